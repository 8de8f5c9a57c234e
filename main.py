#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

Convert one photo:

    python main.py convert photo.jpg -o photo_pixel.png

Run the web service:

    python main.py serve --port 8080

Or use the CLI module directly:

    python -m pixgrid.cli batch --help
"""

from pixgrid.cli import app

if __name__ == "__main__":
    app()
