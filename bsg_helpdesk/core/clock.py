import datetime as dt


def utcnow() -> dt.datetime:
    # Naive UTC everywhere: SQLite drops tzinfo and comparisons must not mix the two.
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)
