"""Books API test cases."""
import uuid
import pytest
from httpx import AsyncClient

from catalog.books.repository import BookRepository
from datakit.exceptions.errors import CancellationError

BOOKS = "/api/v1/books"


class TestCreateBook:
    """Test book creation endpoints."""

    @pytest.mark.asyncio
    async def test_create_book_success(self, client: AsyncClient):
        payload = {"title": "Dune", "pages": 412, "genre": "SciFi", "isbn": "9780441013593"}

        response = await client.post(BOOKS, json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == 200
        assert data["message"] == "success"
        book = data["data"]
        assert uuid.UUID(book["id"])
        assert {k: book[k] for k in payload} == payload
        assert response.headers["X-Trace-ID"]

    @pytest.mark.asyncio
    async def test_create_book_keeps_trace_id(self, client: AsyncClient):
        response = await client.post(
            BOOKS,
            json={"title": "Dune", "pages": 412, "genre": "SciFi"},
            headers={"X-Trace-ID": "trace-123"}
        )
        assert response.headers["X-Trace-ID"] == "trace-123"

    @pytest.mark.asyncio
    async def test_create_book_invalid_payload(self, client: AsyncClient):
        response = await client.post(BOOKS, json={"title": "", "pages": 0, "genre": "SciFi"})

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == 422
        assert data["message"] == "Invalid request parameters"

    @pytest.mark.asyncio
    async def test_create_book_duplicate_isbn(self, client: AsyncClient, sample_books):
        payload = {"title": "Dune again", "pages": 1, "genre": "SciFi", "isbn": "9780441013593"}

        response = await client.post(BOOKS, json=payload)

        assert response.status_code == 200  # error is in data.code
        data = response.json()
        assert data["code"] == 409
        assert "already registered" in data["message"]

    @pytest.mark.asyncio
    async def test_bulk_create(self, client: AsyncClient):
        payload = [
            {"title": "Ubik", "pages": 202, "genre": "SciFi"},
            {"title": "Emma", "pages": 474, "genre": "Classic"},
        ]

        response = await client.post(f"{BOOKS}/bulk", json=payload)

        data = response.json()
        assert data["code"] == 200
        assert [b["title"] for b in data["data"]] == ["Ubik", "Emma"]

        listing = (await client.get(BOOKS)).json()
        assert len(listing["data"]) == 2


class TestReadBooks:
    """Test listing and reading books."""

    @pytest.mark.asyncio
    async def test_list_books(self, client: AsyncClient, sample_books):
        response = await client.get(BOOKS)

        data = response.json()
        assert data["code"] == 200
        assert sorted(b["title"] for b in data["data"]) == ["Dune", "Emma", "Neuromancer"]

    @pytest.mark.asyncio
    async def test_list_books_filters(self, client: AsyncClient, sample_books):
        response = await client.get(BOOKS, params={"genre": "SciFi", "min_pages": 300})

        titles = [b["title"] for b in response.json()["data"]]
        assert titles == ["Dune"]

    @pytest.mark.asyncio
    async def test_get_book(self, client: AsyncClient, sample_books):
        dune = sample_books[0]

        response = await client.get(f"{BOOKS}/{dune.id}")

        book = response.json()["data"]
        assert book["id"] == str(dune.id)
        assert book["title"] == "Dune"
        assert book["pages"] == 412

    @pytest.mark.asyncio
    async def test_get_missing_book(self, client: AsyncClient):
        response = await client.get(f"{BOOKS}/{uuid.uuid4()}")

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == 404
        assert data["data"] is None

    @pytest.mark.asyncio
    async def test_get_book_malformed_id(self, client: AsyncClient):
        response = await client.get(f"{BOOKS}/not-a-uuid")
        assert response.status_code == 422


class TestModifyBooks:
    """Test update and delete endpoints."""

    @pytest.mark.asyncio
    async def test_patch_book(self, client: AsyncClient, sample_books):
        dune = sample_books[0]

        response = await client.patch(f"{BOOKS}/{dune.id}", json={"pages": 896})

        book = response.json()["data"]
        assert (book["title"], book["pages"]) == ("Dune", 896)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["title", "pages", "genre"])
    async def test_patch_rejects_null_required_field(self, client: AsyncClient, sample_books, field):
        dune = sample_books[0]

        response = await client.patch(f"{BOOKS}/{dune.id}", json={field: None})

        assert response.status_code == 422
        assert response.json()["code"] == 422
        assert (await client.get(f"{BOOKS}/{dune.id}")).json()["data"][field] == getattr(dune, field)

    @pytest.mark.asyncio
    async def test_patch_clears_isbn(self, client: AsyncClient, sample_books):
        dune = sample_books[0]

        response = await client.patch(f"{BOOKS}/{dune.id}", json={"isbn": None})

        assert response.json()["data"]["isbn"] is None

    @pytest.mark.asyncio
    async def test_put_book(self, client: AsyncClient, sample_books):
        dune = sample_books[0]
        payload = {"title": "Dune Messiah", "pages": 256, "genre": "SciFi"}

        response = await client.put(f"{BOOKS}/{dune.id}", json=payload)

        book = response.json()["data"]
        assert book["id"] == str(dune.id)
        assert (book["title"], book["pages"], book["isbn"]) == ("Dune Messiah", 256, None)

    @pytest.mark.asyncio
    async def test_delete_book(self, client: AsyncClient, sample_books):
        dune = sample_books[0]

        response = await client.delete(f"{BOOKS}/{dune.id}")
        assert response.json()["data"] == {"id": str(dune.id)}

        missing = (await client.get(f"{BOOKS}/{dune.id}")).json()
        assert missing["code"] == 404


@pytest.mark.asyncio
async def test_cancelled_request_returns_499(client: AsyncClient, monkeypatch):
    async def cancelled_get(self, id, *, cancel=None):
        raise CancellationError("read cancelled")

    monkeypatch.setattr(BookRepository, "get_by_id_async", cancelled_get)

    response = await client.get(f"{BOOKS}/{uuid.uuid4()}")

    assert response.status_code == 499
    assert response.json()["code"] == 499

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"] == {"status": "ok"}
