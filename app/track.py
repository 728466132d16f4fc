from dataclasses import dataclass

# -------------------------
# Stateless identity for a track
# -------------------------
@dataclass(frozen=True)
class Track:
    title: str | None
    artist: str | None
    album: str | None

    def describe(self) -> str:
        return f"{self.artist} — {self.title}" + (f" [{self.album}]" if self.album else "")
