import pytest

from sitejo.documents.storage import LocalFileStorage, guess_media_type, safe_filename
from sitejo.tickets.models import format_file_size


def test_safe_filename_strips_directories():
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("C:\\Users\\budi\\KRS semester 5.pdf") == "KRS_semester_5.pdf"
    assert safe_filename("...") == "file"


def test_guess_media_type():
    assert guess_media_type("surat.pdf") == "application/pdf"
    assert guess_media_type("blob.unknownext") == "application/octet-stream"


def test_path_for_rejects_escaping_keys(tmp_path):
    storage = LocalFileStorage(tmp_path)
    with pytest.raises(ValueError):
        storage.path_for("../outside.txt")
    with pytest.raises(ValueError):
        storage.path_for("/etc/passwd")
    assert storage.path_for("documents/a.pdf") == tmp_path.resolve() / "documents" / "a.pdf"


@pytest.mark.asyncio
async def test_save_exists_delete(tmp_path):
    storage = LocalFileStorage(tmp_path)
    stored = await storage.save("Surat Tugas.pdf", b"content")
    assert stored.size == 7
    assert stored.key.startswith("documents/")
    assert stored.key.endswith("_Surat_Tugas.pdf")
    assert await storage.exists(stored.key)

    assert await storage.delete(stored.key) is True
    assert not await storage.exists(stored.key)
    assert await storage.delete(stored.key) is False
    await storage.discard(stored.key)
    await storage.discard("../escape")


@pytest.mark.parametrize(
    ("size", "expected"),
    [(0, "0 B"), (500, "500 B"), (1536, "1.5 KB"), (10 * 1024 * 1024, "10 MB"), (3 * 1024**3, "3 GB")],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected
