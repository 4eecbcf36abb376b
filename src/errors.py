"""Error taxonomy shared by the retrieval, orchestration and HTTP layers."""


class JarvisError(Exception):
    """Base class for all Jarvis errors."""


class EmbeddingUnavailable(JarvisError):
    """The embedding provider failed or returned an empty vector.

    Never fatal: saves proceed without a vector, searches fall back to
    keyword-only.
    """


class ToolExecutionError(JarvisError):
    """A tool handler failed. Captured and returned to the model as ``{error}``."""


class StreamError(JarvisError):
    """Transport-level failure mid-exchange. Fails the turn, no retry."""


class AuthenticationRequired(JarvisError):
    """No user id could be resolved for a store-backed operation."""


class InvalidCredential(AuthenticationRequired):
    """A bearer credential was presented but could not be verified."""


class ValidationError(JarvisError):
    """Malformed tool arguments or oversized inputs."""


class TooManyToolRounds(JarvisError):
    """The model kept requesting tools past the configured round cap."""

    def __init__(self, rounds: int) -> None:
        super().__init__(f"Model requested tools for {rounds} consecutive rounds")
        self.rounds = rounds


class TurnCancelled(JarvisError):
    """The caller cancelled the turn before it completed."""


class SpeechUnavailable(JarvisError):
    """The speech-synthesis provider failed or returned no audio."""
