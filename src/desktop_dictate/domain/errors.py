class DictateError(Exception):
    pass


class AudioDeviceError(DictateError):
    pass


class AudioConfigurationError(AudioDeviceError):
    pass


class RecognizerConnectionError(DictateError):
    pass


class RecognitionServerError(DictateError):
    def __init__(self, code: str | None, message: str | None) -> None:
        self.code = code or ""
        self.message = message or ""
        super().__init__(f"{self.code} - {self.message}")


class MalformedMessageError(DictateError):
    pass


class InsertionError(DictateError):
    pass
