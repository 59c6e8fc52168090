"""
Helper functions for the app.
"""
import calendar
from datetime import datetime, timezone

from flask import jsonify


class ResponseHelper:
    """
    Helper class for generating JSON responses.
    """

    @staticmethod
    def success(message, status_code=200):
        """
        Generate a success response.
        """
        if isinstance(message, dict):
            return jsonify(message), status_code

        return jsonify({"message": message}), status_code

    @staticmethod
    def error(message, status_code=400, **extra):
        """
        Generate an error response. Extra keyword arguments are added next to the error message.
        """
        body = {"error": message}
        body.update(extra)
        return jsonify(body), status_code


class DateTimeNaiveHelper:
    """
    Helper class for converting between naive and timezone-aware datetime objects.
    """

    @staticmethod
    def now():
        return datetime.now(timezone.utc)

    @staticmethod
    def make_timezone_aware(dt):
        """Convert naive datetime to UTC timezone-aware datetime, since SQLite gives out naive datetimes."""
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt

    @staticmethod
    def isoformat(dt):
        dt = DateTimeNaiveHelper.make_timezone_aware(dt)
        return dt.isoformat() if dt else None

    @staticmethod
    def add_months(dt, months):
        """
        Add calendar months, clamping the day to the end of the target month (Nov 30 + 3 months -> Feb 28/29).
        """
        month_index = dt.month - 1 + months
        year = dt.year + month_index // 12
        month = month_index % 12 + 1
        day = min(dt.day, calendar.monthrange(year, month)[1])
        return dt.replace(year=year, month=month, day=day)
