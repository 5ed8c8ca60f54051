import os
import pathlib
import re
import tempfile

from obrasflow.core.errors import SlotError, SlotQuotaExceeded

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class DurableSlot:
    """Armazenamento chave/valor sincrono onde a imagem do banco local sobrevive entre execucoes."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class FileSlot(DurableSlot):
    def __init__(self, base_dir: str | os.PathLike | None = None) -> None:
        self.base_dir = pathlib.Path(base_dir or os.getenv("LOCAL_STORE_DIR", "storage")).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> pathlib.Path:
        if not _SAFE_KEY.match(key):
            raise SlotError(f"Chave de armazenamento invalida: {key!r}")
        return self.base_dir / key

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="ascii")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        # Escreve em arquivo temporario e troca, para nunca deixar uma imagem pela metade.
        fd, tmp_path = tempfile.mkstemp(dir=self.base_dir, prefix=f".{key}.")
        try:
            with os.fdopen(fd, "w", encoding="ascii") as handle:
                handle.write(value)
            os.replace(tmp_path, path)
        except OSError as exc:
            pathlib.Path(tmp_path).unlink(missing_ok=True)
            raise SlotError(f"Falha ao gravar {key}: {exc}") from exc


class MemorySlot(DurableSlot):
    def __init__(self, capacity: int | None = None) -> None:
        self.capacity = capacity
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.capacity is not None:
            used = sum(len(item) for name, item in self._data.items() if name != key)
            if used + len(value) > self.capacity:
                raise SlotQuotaExceeded(f"Capacidade excedida ao gravar {key}")
        self._data[key] = value
