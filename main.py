#!/usr/bin/env python3
"""
Legacy entry point for the docs assistant.
For installed environments, use: docs-assistant

This file remains for running from a source checkout.
"""
import sys
from pathlib import Path

# Add src directory to path for development mode
current_dir = Path(__file__).parent
src_dir = current_dir / "src"
sys.path.insert(0, str(src_dir))

from docs_assistant.cli import main

if __name__ == "__main__":
    sys.exit(main())
