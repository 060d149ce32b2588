#!/usr/bin/env python3
"""
Start the dashboard from a source checkout without installing it.

Accepts the same options as the ``torrent-dashboard`` command, e.g.
``python run_server.py --socket ~/rtorrent.sock --port 8080``.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from torrent_dashboard.server import main

if __name__ == "__main__":
    main()
