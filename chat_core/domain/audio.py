"""录音与播放协作方的接口。

具体的音频采集/播放由宿主应用提供，核心只依赖以下协议。
"""

from pathlib import Path
from typing import Optional, Protocol


class AudioPlaybackSink(Protocol):
    """接收合成语音的原始字节并负责播放。"""

    def play(self, data: bytes) -> None:
        ...


class AudioRecorder(Protocol):
    """录音来源：停止录音后返回录好的音频文件路径。"""

    def start_recording(self) -> None:
        ...

    def stop_recording(self) -> Optional[Path]:
        ...
