import io

import pytest

from app.notaris.storage import LocalStorage, StorageError, document_key, format_file_size, safe_filename, validate_upload


def test_validate_upload():
    assert validate_upload("ktp.pdf", "application/pdf", 1024) is None
    assert validate_upload("ktp.PDF", "application/octet-stream", 1024) is None
    assert validate_upload("foto.jpg", "", 1024) is None
    assert validate_upload("ktp.pdf", "application/pdf", 11 * 1024 * 1024) == 'File "ktp.pdf" is too large (max 10.0 MB).'
    assert validate_upload("setup.exe", "application/x-msdownload", 10).startswith('File type ".exe" is not allowed.')
    assert validate_upload("scan.png", "application/pdf", 10) == 'MIME type "application/pdf" does not match extension ".png".'


def test_keys_and_names():
    assert safe_filename("../ktp scan.pdf") == "ktp_scan.pdf"
    assert safe_filename("") == "upload.bin"
    assert document_key("DOC-AB-XYZ-0001", "a" * 64, "ktp.pdf") == "documents/DOC-AB-XYZ-0001/aaaaaaaaaaaa-ktp.pdf"
    assert format_file_size(512) == "512 B"
    assert format_file_size(1536) == "1.5 KB"


def test_local_storage_round_trip(tmp_path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("documents/DOC-1/x-ktp.pdf", b"data")
    assert storage.exists("documents/DOC-1/x-ktp.pdf")
    with storage.open("documents/DOC-1/x-ktp.pdf") as f:
        assert f.read() == b"data"
    storage.delete("documents/DOC-1/x-ktp.pdf")
    assert not storage.exists("documents/DOC-1/x-ktp.pdf")
    with pytest.raises(StorageError):
        storage.open("documents/DOC-1/x-ktp.pdf")
    with pytest.raises(StorageError):
        storage.put_bytes("../outside.txt", b"nope")


def test_upload_rejects_disallowed_types(client, login):
    headers = login("client@example.com")
    r = client.post("/api/documents", json={"title": "Surat Kuasa"}, headers=headers)
    doc_id = r.json["document"]["id"]
    r = client.post(
        f"/api/documents/{doc_id}/files",
        data={"file": (io.BytesIO(b"MZ"), "setup.exe")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert r.status_code == 400
    assert r.json["error"].startswith('File type ".exe" is not allowed.')
