from functools import wraps


def synchronized(method):
    """Метод выполняется под self._lock: read-modify-write записи не перемежаются"""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper
