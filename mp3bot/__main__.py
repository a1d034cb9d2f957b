"""Package entry point for ``python -m mp3bot``.

``python -m mp3bot`` (or ``python -m mp3bot bot``) starts the Slack bot;
``python -m mp3bot convert URL`` converts a single video.
"""

import sys

from mp3bot.cli import main

if __name__ == "__main__":
    sys.exit(main())
