"""Error taxonomy for the analytics layer"""

class AnalyticsError(Exception):
    """Base class for all errors raised by listening_analytics"""

class ValidationError(AnalyticsError):
    """Malformed input: bad range or enum value, or a referenced entity that does not exist"""

class DuplicateError(AnalyticsError):
    """A user liked the same track twice"""

    def __init__(self, user_id: int, track_id: int):
        super().__init__(f"User {user_id} already likes track {track_id}")
        self.user_id = user_id
        self.track_id = track_id

class ConsistencyError(AnalyticsError):
    """A track's popularity counter disagrees with its like events"""

    def __init__(self, track_id: int, stored: int, expected: int):
        super().__init__(
            f"Track {track_id} popularity is {stored} but it has {expected} likes"
        )
        self.track_id = track_id
        self.stored = stored
        self.expected = expected

class RecommendationTimeout(AnalyticsError, TimeoutError):
    """Recommendation computation ran past its deadline or was cancelled"""

class InvalidArgument(AnalyticsError, ValueError):
    """A caller-supplied parameter is out of range, e.g. a non-positive limit"""
