"""
Touchbase — Entry Point.

`python main.py` starts the webhook server with the weekly check-in job;
`python main.py checkin` sends the check-in once and exits.
"""

from touchbase.bot.app import main

if __name__ == "__main__":
    main()
