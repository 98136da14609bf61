#!/usr/bin/env python3
"""Local runner"""
import sys

from unifi_backup.cli import main

if __name__ == '__main__':
    sys.exit(main())
