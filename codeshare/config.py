from pydantic_settings import BaseSettings, SettingsConfigDict


class ClassroomSettings(BaseSettings):
    """Classroom tunables, read from CLASSROOM_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLASSROOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Channels group every teacher socket joins.
    TEACHER_GROUP: str = "classroom.teacher"
    MAX_SNAPSHOT_CHARS: int = 1_000_000
    # Accept ?id=&username=&display_name= from the socket URL when no Django user
    # is attached. Development and tests only.
    TRUST_CLIENT_IDENTITY: bool = False


config = ClassroomSettings()
