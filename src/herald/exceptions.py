class HeraldError(Exception):
    pass


class ConfigError(HeraldError):
    pass


class ResolutionError(HeraldError):
    pass


class NotificationError(HeraldError):
    pass
