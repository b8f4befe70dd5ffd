#!/usr/bin/env python3
"""Operator entry point: python run.py backup | list | restore <filename> | sweep"""
from ems_backup.cli import main

if __name__ == '__main__':
    main()
