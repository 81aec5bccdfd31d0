#!/usr/bin/env python3
"""
Application entry point for the agent chat stream client.

    python main.py --message "hello"
    python main.py --replay captured_stream.jsonl

See host.main for the available options.
"""

from host.main import main

if __name__ == "__main__":
    main()
