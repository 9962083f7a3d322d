"""Rich rendering of recorder and player state."""

from typing import Optional

from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from ..models.playback import PlaybackState
from ..models.session import RecordingSession, Voice
from ..utils import format_timer

KEY_HELP = "r=record/stop  p=play latest  s=stop  [ ]=seek  q=quit"


def render_status(session: RecordingSession,
                  playback: PlaybackState,
                  input_level: float = 0.0,
                  latest: Optional[Voice] = None) -> Panel:
    """Build the status panel shown by the terminal shell."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold", justify="right")
    table.add_column()

    if session.is_active:
        table.add_row("Recorder", Text("🔴 RECORDING", style="bold red"))
    else:
        table.add_row("Recorder", Text("⏹️  IDLE", style="bold yellow"))
    table.add_row("Timer", format_timer(session.elapsed_millis))

    if session.is_active:
        table.add_row("File", session.output_file_path)
        table.add_row("Input", ProgressBar(total=1.0, completed=min(input_level, 1.0), width=30))

    player_label = "▶️  PLAYING" if playback.is_playing else "⏸️  STOPPED"
    table.add_row("Player", Text(f"{player_label} ({playback.lifecycle_state.value})", style="bold green"))
    table.add_row(
        "Progress",
        f"{format_timer(playback.position_millis)} / {format_timer(playback.duration_millis)}",
    )
    if playback.duration_millis > 0:
        table.add_row("", ProgressBar(total=playback.duration_millis,
                                      completed=playback.position_millis, width=30))

    table.add_row("Latest", latest.title if latest else "-")

    return Panel(table, title="🎙️  VoiceRecorder", subtitle=KEY_HELP)
