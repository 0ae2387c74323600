"""
Enables:  python -m netcup_claw <command>
"""
from netcup_claw.cli import main

if __name__ == "__main__":
    main()
