class SessionStartError(Exception):
    pass


class InvalidStartRequest(SessionStartError, ValueError):
    pass


class ResolutionError(SessionStartError):
    pass
