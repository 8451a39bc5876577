"""Custom JSON encoding utilities"""
import enum
import json
from datetime import date, datetime

class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles dates, datetimes and enums"""
    def default(self, obj):
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, enum.Enum):
            return obj.value
        return super().default(obj)

def json_dumps(obj, indent=None):
    """Helper function to dump JSON with date handling"""
    return json.dumps(obj, cls=DateTimeEncoder, indent=indent)
