class DomainException(Exception):
    """
    Base class for exceptions thrown for domain (business logic) errors.
    """


class TelemetryNotInitializedException(DomainException):
    """
    Thrown when a backend call is made before the telemetry session has been started.
    """


class TelemetryTransportException(DomainException):
    """
    Thrown by a backend gateway when sending telemetry to the collector fails.
    """


class InvalidTelemetryConfigException(DomainException, ValueError):
    """
    Thrown when the telemetry configuration file holds an invalid value.
    """
