"""Archive helpers for hosted repository sources.

GitHub and GitLab both serve a repository snapshot as a gzipped tarball whose
entries sit under a single top-level directory named after the project and
commit.
"""

import io
import tarfile


def extract_tarball(data: bytes) -> dict[str, bytes]:
    """Extract regular files from a repository tarball.

    The single root directory wrapping the tree is stripped from every path.

    Args:
        data: Gzipped tar archive.

    Returns:
        Mapping of relative path to file bytes.

    Raises:
        tarfile.TarError: If the archive is corrupt.
    """
    files: dict[str, bytes] = {}
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
        for member in archive:
            if not member.isfile():
                continue
            _, _, path = member.name.partition("/")
            if not path:
                continue
            handle = archive.extractfile(member)
            if handle is None:
                continue
            files[path] = handle.read()
    return files
