#!/usr/bin/env python
"""
Launcher script for the audio category CLI.

Runs the operator CLI from a source checkout without installing the package.
"""

import sys
from pathlib import Path

# Add src/ to the Python path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from audio_categories.cli import main

if __name__ == "__main__":
    sys.exit(main())
