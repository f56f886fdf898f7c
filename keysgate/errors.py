class ConfigError(RuntimeError):
    """A secret required by an enabled feature is missing."""


class UnknownProviderError(KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"unknown provider: {self.name!r}"
