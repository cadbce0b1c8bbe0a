#!/usr/bin/env python3
"""
CLI entry point for fulfillment jobs.
Usage: python cli_jobs.py [command] [options]
"""

from atelier.cli.jobs import fulfillment

if __name__ == '__main__':
    fulfillment()
