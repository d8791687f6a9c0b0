"""
Request parsing helpers shared by the JSON API views
"""
import json
from datetime import date, datetime

from django.http import JsonResponse
from django.utils.dateparse import parse_date, parse_datetime


def parse_json_body(request):
    """
    Parse a JSON request body.

    Returns:
        tuple: (data, error_response) - error_response is a 400 JsonResponse
        when the body is not a JSON object, otherwise None
    """
    if not request.body:
        return {}, None
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, JsonResponse({'success': False, 'error': 'Invalid JSON data'}, status=400)
    if not isinstance(data, dict):
        return None, JsonResponse({'success': False, 'error': 'Request body must be a JSON object'}, status=400)
    return data, None


def parse_date_value(value):
    """Parse 'YYYY-MM-DD' or an ISO datetime into a date; None for empty. Raises ValueError."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    parsed = parse_date(text)
    if parsed:
        return parsed
    parsed = parse_datetime(text.replace('Z', '+00:00'))
    if parsed:
        return parsed.date()
    raise ValueError(f"Invalid date: {value}")


def iso(value):
    """ISO string for dates/datetimes, None passthrough"""
    return value.isoformat() if value else None
