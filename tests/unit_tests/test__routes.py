from urllib.parse import parse_qs, urlsplit

from bson import ObjectId
from fastapi import status
from fastapi.testclient import TestClient

from tests.consts import IDENTITY_HEADER, OTHER_OWNER, TEST_OWNER

# Constants for testing
TEST_FILE_NAME = "test.txt"
TEST_FILE_CONTENT = b"Hello, world!"
TEST_FILE_CONTENT_TYPE = "text/plain"

OWNER_HEADERS = {IDENTITY_HEADER: TEST_OWNER}
OTHER_HEADERS = {IDENTITY_HEADER: OTHER_OWNER}


def upload(client: TestClient, filename: str = TEST_FILE_NAME, headers=None) -> dict:
    response = client.post(
        "/v1/files",
        files={"file_content": (filename, TEST_FILE_CONTENT, TEST_FILE_CONTENT_TYPE)},
        headers=headers or OWNER_HEADERS,
    )
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["file"]


def token_from(url: str) -> str:
    return parse_qs(urlsplit(url).query)["token"][0]


def test__upload_file(client: TestClient, object_store, metadata_store):
    file = upload(client)

    assert file["filename"] == TEST_FILE_NAME
    assert file["owner"] == TEST_OWNER
    assert file["content_type"] == TEST_FILE_CONTENT_TYPE
    assert file["size_bytes"] == len(TEST_FILE_CONTENT)
    assert file["token_type"] == "time-limited"
    assert "download_token" not in file
    assert object_store.objects[f"{file['id']}_{TEST_FILE_NAME}"] == TEST_FILE_CONTENT
    assert ObjectId(file["id"]) in metadata_store.documents


def test__missing_identity_is_unauthorized(client: TestClient):
    response = client.get("/v1/files")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test__upload_storage_failure(client: TestClient, object_store, metadata_store):
    object_store.fail("put")

    response = client.post(
        "/v1/files",
        files={"file_content": (TEST_FILE_NAME, TEST_FILE_CONTENT, TEST_FILE_CONTENT_TYPE)},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["error"] == "storage_write_failure"
    assert metadata_store.documents == {}


def test__upload_metadata_failure(client: TestClient, metadata_store):
    metadata_store.fail("insert_one")

    response = client.post(
        "/v1/files",
        files={"file_content": (TEST_FILE_NAME, TEST_FILE_CONTENT, TEST_FILE_CONTENT_TYPE)},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["error"] == "metadata_write_failure"


def test__list_and_get_files(client: TestClient):
    first = upload(client, "a.txt")
    upload(client, "theirs.txt", headers=OTHER_HEADERS)

    response = client.get("/v1/files", params={"check_storage": True}, headers=OWNER_HEADERS)

    assert response.status_code == status.HTTP_200_OK
    files = response.json()["files"]
    assert [f["id"] for f in files] == [first["id"]]
    assert files[0]["blob_exists"] is True
    assert all("download_token" not in f for f in files)

    response = client.get(f"/v1/files/{first['id']}", headers=OWNER_HEADERS)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["filename"] == "a.txt"

    response = client.get(f"/v1/files/{first['id']}", headers=OTHER_HEADERS)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test__get_file_with_malformed_id(client: TestClient):
    response = client.get("/v1/files/not-an-id", headers=OWNER_HEADERS)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "invalid_input"


def test__delete_file(client: TestClient, object_store):
    file = upload(client)

    response = client.delete(f"/v1/files/{file['id']}", headers=OTHER_HEADERS)
    assert response.status_code == status.HTTP_404_NOT_FOUND

    response = client.delete(f"/v1/files/{file['id']}", headers=OWNER_HEADERS)
    assert response.status_code == status.HTTP_200_OK
    assert object_store.objects == {}

    response = client.delete(f"/v1/files/{file['id']}", headers=OWNER_HEADERS)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test__delete_partial_failure(client: TestClient, object_store):
    file = upload(client)
    object_store.fail("remove")

    response = client.delete(f"/v1/files/{file['id']}", headers=OWNER_HEADERS)

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert response.json()["error"] == "storage_deletion_failure"
    assert response.json()["file_id"] == file["id"]


def test__batch_delete(client: TestClient):
    mine = upload(client, "a.txt")
    theirs = upload(client, "b.txt", headers=OTHER_HEADERS)

    response = client.post(
        "/v1/files/delete",
        json={"file_ids": [mine["id"], theirs["id"]]},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == status.HTTP_200_OK
    results = response.json()["results"]
    assert results[mine["id"]] == {"status": "deleted", "error": None}
    assert results[theirs["id"]]["status"] == "failed"
    assert results[theirs["id"]]["error"]["error"] == "not_found_or_forbidden"


def test__batch_delete_requires_ids(client: TestClient):
    response = client.post("/v1/files/delete", json={"file_ids": []}, headers=OWNER_HEADERS)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test__one_time_download_flow(client: TestClient):
    file = upload(client)

    response = client.post(
        f"/v1/files/{file['id']}/presigned",
        json={"token_type": "one-time"},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["token_type"] == "one-time"
    assert body["expires_in_seconds"] == 30 * 60
    token = token_from(body["presigned_url"])

    download_url = f"/v1/files/{file['id']}/download"
    response = client.get(download_url, params={"token": token}, headers=OWNER_HEADERS)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["expires_in_seconds"] == 10 * 60

    response = client.get(download_url, params={"token": token}, headers=OWNER_HEADERS)
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"] == "invalid_token"


def test__time_limited_token(client: TestClient):
    file = upload(client)

    response = client.post(
        f"/v1/files/{file['id']}/presigned",
        json={"token_type": "time-limited", "duration_minutes": 90},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["expires_in_seconds"] == 90 * 60
    token = token_from(response.json()["presigned_url"])

    for _ in range(2):
        response = client.get(
            f"/v1/files/{file['id']}/download", params={"token": token}, headers=OWNER_HEADERS
        )
        assert response.status_code == status.HTTP_200_OK


def test__presign_by_non_owner_is_forbidden(client: TestClient):
    file = upload(client)

    response = client.post(f"/v1/files/{file['id']}/presigned", json={}, headers=OTHER_HEADERS)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "unauthorized"


def test__one_time_token_accepts_zero_duration(client: TestClient):
    file = upload(client)

    response = client.post(
        f"/v1/files/{file['id']}/presigned",
        json={"token_type": "one-time", "duration_minutes": 0},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["expires_in_seconds"] == 30 * 60


def test__time_limited_token_rejects_zero_duration(client: TestClient):
    file = upload(client)

    response = client.post(
        f"/v1/files/{file['id']}/presigned",
        json={"token_type": "time-limited", "duration_minutes": 0},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "invalid_input"


def test__presign_duration_too_long(client: TestClient):
    file = upload(client)

    response = client.post(
        f"/v1/files/{file['id']}/presigned",
        json={"duration_minutes": 7 * 24 * 60 + 1},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test__batch_presign(client: TestClient):
    first = upload(client, "a.txt")
    second = upload(client, "b.txt")
    missing = str(ObjectId())

    response = client.post(
        "/v1/files/presigned",
        json={"file_ids": [first["id"], second["id"], missing], "duration_minutes": 15},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert set(body["presigned_urls"]) == {first["id"], second["id"]}
    assert body["errors"] == [
        {"file_id": missing, "error": "not_found_or_forbidden", "detail": "file not found"}
    ]
    assert body["expires_in_seconds"] == 15 * 60


def test__download_with_wrong_token(client: TestClient):
    file = upload(client)

    response = client.get(
        f"/v1/files/{file['id']}/download", params={"token": "0" * 32}, headers=OWNER_HEADERS
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test__download_by_non_owner(client: TestClient):
    file = upload(client)
    response = client.post(f"/v1/files/{file['id']}/presigned", json={}, headers=OWNER_HEADERS)
    token = token_from(response.json()["presigned_url"])

    response = client.get(
        f"/v1/files/{file['id']}/download", params={"token": token}, headers=OTHER_HEADERS
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test__health(client: TestClient, metadata_store):
    response = client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "ok"
    assert body["ready"] is True
    assert body["components"] == {"api": "ready", "storage": "ready", "database": "ready"}

    metadata_store.fail("ping")
    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert body["ready"] is False
