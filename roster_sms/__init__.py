"""
📇 Roster SMS
-------------
Keeps a club roster in a Google Sheet in sync with form responses and event
attendance, and texts members through Twilio (bulk batches, composer sends,
inbound STOP/START handling).
"""

__version__ = "1.0.0"
