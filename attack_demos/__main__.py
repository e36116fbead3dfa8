"""
Main entry point for the attack_demos module.

Allows invoking the CLI via:
    python -m attack_demos list
    python -m attack_demos play sqli
    python -m attack_demos trace csrf --until 22000 --every 500
"""

from attack_demos.cli import main

if __name__ == "__main__":
    main()
