"""
Collects a job's persisted chunks, converts them with ogr2ogr and zips the
converted output.
"""

import subprocess
import threading
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from .errors import ConversionError
from .logger import get_logger
from .pool import ChunkPool, PersistedChunk

logger = get_logger()

# name -> (ogr2ogr driver, file extension)
FORMATS: Dict[str, Tuple[str, str]] = {
    "shapefile": ("ESRI Shapefile", ".shp"),
    "geojson": ("GeoJSON", ".geojson"),
    "gpkg": ("GPKG", ".gpkg"),
}

# Files a driver writes next to its main output
SIDECARS: Dict[str, Tuple[str, ...]] = {
    ".shp": (".shp", ".shx", ".dbf", ".prj", ".cpg"),
}


class ResultCollector(Protocol):
    def register(self, chunk: PersistedChunk) -> None:
        ...

    def convert(self) -> bool:
        ...

    def archive(self) -> Path:
        ...

    def wait_for_cleanup(self, timeout: Optional[float] = None) -> None:
        ...


class OgrCollector:
    """
    ResultCollector backed by the ogr2ogr command line tool.

    The first chunk creates `{pool_base}{extension}`; every later chunk is
    appended to it. Chunk files are removed in the background once the whole
    pool converted cleanly and are kept otherwise; in that case they go into
    the archive next to whatever was converted.
    """

    def __init__(self, pool_base: Path, ogr_format: str, extension: str, command: str = "ogr2ogr"):
        self.pool_base = Path(pool_base)
        self.ogr_format = ogr_format
        self.extension = extension
        self.command = command
        self.pool = ChunkPool()
        self._cleanup_thread: Optional[threading.Thread] = None
        # set once an ogr2ogr run has written the destination
        self._converted = False

    @property
    def destination(self) -> Path:
        return self.pool_base.with_name(self.pool_base.name + self.extension)

    @property
    def output_files(self) -> List[Path]:
        """The destination plus any sidecar files its driver writes."""
        extensions = SIDECARS.get(self.extension, (self.extension,))
        return [self.pool_base.with_name(self.pool_base.name + ext) for ext in extensions]

    @property
    def archive_path(self) -> Path:
        return self.pool_base.with_name(self.pool_base.name + ".zip")

    def register(self, chunk: PersistedChunk) -> None:
        self.pool.add(chunk)

    def _command_for(self, chunk: PersistedChunk, first: bool) -> List[str]:
        cmd = [self.command, "-f", self.ogr_format]
        cmd += ["-overwrite"] if first else ["-update", "-append"]
        cmd += [str(self.destination), str(chunk.path)]
        return cmd

    def _run(self, cmd: List[str]) -> None:
        logger.info("Running command: " + " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ConversionError(f"Could not start {cmd[0]}: {e}") from e
        logger.info("Process finished", status=proc.returncode)
        if proc.stderr and proc.stderr.strip():
            logger.warning(proc.stderr.strip())
        if proc.returncode != 0:
            raise ConversionError(f"{cmd[0]} exited with status {proc.returncode}")

    def convert(self) -> bool:
        """Convert every pooled chunk. Returns False on the first failure."""
        chunks = self.pool.chunks()
        if not chunks:
            logger.info("Nothing to convert, pool is empty", pool=str(self.pool_base))
            return True

        self.destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            for i, chunk in enumerate(chunks):
                self._run(self._command_for(chunk, first=(i == 0)))
                self._converted = True
        except ConversionError as e:
            logger.error("ogr2ogr failed, keeping chunk files", error=str(e), pool=str(self.pool_base))
            return False

        self._delete_async([c.path for c in chunks])
        self.pool.clear()
        return True

    def _delete_async(self, paths: List[Path]) -> None:
        def _delete():
            for path in paths:
                try:
                    path.unlink()
                except OSError as e:
                    logger.warning(f"Couldn't delete {path}", error=str(e))

        self._cleanup_thread = threading.Thread(target=_delete, name="chunk-cleanup", daemon=True)
        self._cleanup_thread.start()

    def wait_for_cleanup(self, timeout: Optional[float] = None) -> None:
        if self._cleanup_thread is not None:
            self._cleanup_thread.join(timeout)

    def archive(self) -> Path:
        """
        Zip this run's files into `{pool_base}.zip`.

        Members are the converted output (when a conversion step succeeded)
        and any chunk files still pooled, i.e. left behind by a failed
        conversion. An empty pool gives an empty zip.
        """
        zip_path = self.archive_path
        zip_path.parent.mkdir(parents=True, exist_ok=True)
        candidates = self.output_files if self._converted else []
        candidates += [chunk.path for chunk in self.pool.chunks()]
        members = sorted((p for p in candidates if p.is_file()), key=lambda p: p.name)
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for member in members:
                zf.write(member, arcname=member.name)
        logger.info("Zipped pool", archive=str(zip_path), members=len(members))
        return zip_path


def make_collector(output_format: str, pool_base: Path) -> OgrCollector:
    try:
        ogr_format, extension = FORMATS[output_format]
    except KeyError:
        raise ValueError(
            f"Unsupported format {output_format!r}. Use one of: {', '.join(sorted(FORMATS))}"
        )
    return OgrCollector(pool_base, ogr_format, extension)
