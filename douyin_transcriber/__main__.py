"""Package entry point for ``python -m douyin_transcriber``."""

import sys

if __name__ == "__main__":
    from douyin_transcriber.cli import main

    sys.exit(main())
