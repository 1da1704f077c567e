"""Douyin Transcriber: share link to spoken-text transcript.

WHY: Short-video shares carry speech that is useful as text, but getting
there means scraping the share page, downloading the video, and driving
one of two incompatible Volcengine recognition protocols.

HOW: Three stages: resolve (share.py), download (download.py),
transcribe (asr package). pipeline.py chains them; cli.py exposes them.

RULES:
- The asr package never raises for wire failures; it returns error results
- Only input validation errors abort before a result exists
"""

__version__ = "0.1.0"
