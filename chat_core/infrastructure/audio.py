from pathlib import Path
from uuid import uuid4

from chat_core.config.settings import settings


class FileAudioSink:
    """把合成语音写入文件，供命令行/脚本环境“播放”。"""

    def __init__(self, directory: str | Path | None = None, suffix: str = ".mp3"):
        self._dir = Path(directory or Path(settings.storage_root) / "speech").resolve()
        self._suffix = suffix
        self.last_path: Path | None = None

    def play(self, data: bytes) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._dir / f"speech-{uuid4().hex}{self._suffix}"
        path.write_bytes(data)
        self.last_path = path
