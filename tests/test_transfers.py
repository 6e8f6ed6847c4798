import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
import tempfile
import unittest

from s3_folders.authorizer import TransferAuthorizer
from s3_folders.cache import ListingCache
from s3_folders.errors import AuthorizationError, BundlingError, ListingError, TransferError
from s3_folders.models import Bundle, Listing, LocalFile, ObjectRecord, Operation, TransferAuthorization
from s3_folders.transfers import DownloadOrchestrator, UploadOrchestrator

MODIFIED = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeBackend:
    """In-memory stand-in for the authorization backend."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.authorize_calls = []
        self.listing_calls = []
        self.bundle_calls = []
        self.deny = False
        self.listing_errors: list[Exception] = []
        self.bundle_result: Bundle | Exception | None = None

    async def fetch_listing(self, prefix):
        self.listing_calls.append(prefix)
        if self.listing_errors:
            raise self.listing_errors.pop(0)
        files = tuple(
            ObjectRecord(key=key, size_bytes=len(data), last_modified=MODIFIED)
            for key, data in sorted(self.objects.items())
            if key.startswith(prefix) and "/" not in key[len(prefix):]
        )
        return Listing(prefix=prefix, files=files)

    async def authorize(self, key, operation):
        self.authorize_calls.append((key, operation))
        if self.deny:
            raise AuthorizationError(f"Denied {operation.value} of '{key}'")
        return TransferAuthorization(
            key=key,
            operation=operation,
            url=f"https://signed.example/{key}?n={len(self.authorize_calls)}",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    async def request_bundle(self, prefix):
        self.bundle_calls.append(prefix)
        if isinstance(self.bundle_result, Exception):
            raise self.bundle_result
        return self.bundle_result


class FakeTransport:
    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.uploads = []
        self.downloads = []
        self.upload_error: Exception | None = None
        self.download_error: Exception | None = None

    async def upload(self, authorization, file, *, progress_callback=None, cancel_requested=None):
        self.uploads.append((authorization, file))
        if self.upload_error:
            raise self.upload_error
        self.backend.objects[authorization.key] = file.data or b""

    async def download(
        self,
        url,
        destination,
        *,
        label,
        authorization=None,
        progress_callback=None,
        cancel_requested=None,
    ):
        self.downloads.append((url, destination, label))
        if self.download_error:
            raise self.download_error
        data = self.backend.objects.get(label, b"archive")
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(data)
        return len(data)


class TransferTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.backend = FakeBackend()
        self.transport = FakeTransport(self.backend)
        self.cache = ListingCache(self.backend.fetch_listing)
        self.authorizer = TransferAuthorizer(self.backend)
        self.uploads = UploadOrchestrator(self.authorizer, self.transport, self.cache)
        self.downloads = DownloadOrchestrator(self.authorizer, self.transport, self.backend)
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()


class UploadOrchestratorTests(TransferTestCase):
    async def test_upload_into_folder_refreshes_that_folder(self):
        await self.cache.get_folder_listing("docs/")
        file = LocalFile.from_bytes("notes.txt", b"12345")

        result = await self.uploads.upload("docs/", file)

        self.assertTrue(result.succeeded)
        self.assertTrue(result.refreshed)
        self.assertEqual("docs/notes.txt", result.key)
        self.assertEqual([("docs/notes.txt", Operation.WRITE)], self.backend.authorize_calls)
        listing = await self.cache.get_folder_listing("docs/")
        uploaded = listing.find("docs/notes.txt")
        self.assertIsNotNone(uploaded)
        self.assertEqual(file.size_bytes, uploaded.size_bytes)
        self.assertIsNone(listing.find("docs/missing.txt"))
        self.assertEqual(["docs/", "docs/"], self.backend.listing_calls)

    async def test_upload_to_root_uses_plain_name_and_refreshes_root(self):
        result = await self.uploads.upload("", LocalFile.from_bytes("readme.txt", b"hi"))

        self.assertEqual("readme.txt", result.key)
        self.assertEqual([""], self.backend.listing_calls)
        root = await self.cache.get_root_listing()
        self.assertEqual(["readme.txt"], [record.key for record in root.files])

    async def test_denied_authorization_stops_before_transfer(self):
        self.backend.deny = True

        with self.assertRaises(AuthorizationError):
            await self.uploads.upload("docs/", LocalFile.from_bytes("a.txt", b"x"))

        self.assertEqual([], self.transport.uploads)
        self.assertEqual([], self.backend.listing_calls)

    async def test_transfer_failure_is_not_retried(self):
        self.transport.upload_error = TransferError("rejected")

        with self.assertRaises(TransferError):
            await self.uploads.upload("docs/", LocalFile.from_bytes("a.txt", b"x"))

        self.assertEqual(1, len(self.transport.uploads))
        self.assertEqual(1, len(self.backend.authorize_calls))
        self.assertEqual([], self.backend.listing_calls)

    async def test_refresh_failure_does_not_fail_upload(self):
        self.backend.listing_errors = [ListingError("listing unavailable")]

        result = await self.uploads.upload("", LocalFile.from_bytes("readme.txt", b"hi"))

        self.assertTrue(result.succeeded)
        self.assertFalse(result.refreshed)
        self.assertIsInstance(result.refresh_error, ListingError)
        self.assertIn("readme.txt", self.backend.objects)

    async def test_each_upload_requests_a_fresh_authorization(self):
        await self.uploads.upload("", LocalFile.from_bytes("a.txt", b"1"))
        await self.uploads.upload("", LocalFile.from_bytes("a.txt", b"2"))

        urls = [authorization.url for authorization, _ in self.transport.uploads]
        self.assertEqual(2, len(self.backend.authorize_calls))
        self.assertNotEqual(urls[0], urls[1])


class DownloadOrchestratorTests(TransferTestCase):
    async def test_download_object_authorizes_read(self):
        self.backend.objects["docs/guide.pdf"] = b"pdf"

        result = await self.downloads.download_object("docs/guide.pdf", self.tmp)

        self.assertEqual([("docs/guide.pdf", Operation.READ)], self.backend.authorize_calls)
        self.assertEqual(self.tmp / "guide.pdf", result.destination)
        self.assertEqual(b"pdf", result.destination.read_bytes())
        self.assertEqual(3, result.size_bytes)

    async def test_download_object_denied(self):
        self.backend.deny = True

        with self.assertRaises(AuthorizationError):
            await self.downloads.download_object("docs/guide.pdf", self.tmp)
        self.assertEqual([], self.transport.downloads)

    async def test_download_folder_follows_bundle_pointer(self):
        self.backend.bundle_result = Bundle(prefix="docs/", filename="docs.zip", url="https://signed.example/docs.zip")

        result = await self.downloads.download_folder("docs/", self.tmp)

        self.assertEqual(["docs/"], self.backend.bundle_calls)
        self.assertEqual("https://signed.example/docs.zip", self.transport.downloads[0][0])
        self.assertEqual(self.tmp / "docs.zip", result.destination)
        self.assertEqual([], self.backend.authorize_calls)

    async def test_download_folder_writes_inline_archive(self):
        self.backend.bundle_result = Bundle(prefix="docs/", filename="docs.zip", content=b"PK")

        result = await self.downloads.download_folder("docs/", self.tmp)

        self.assertEqual(b"PK", result.destination.read_bytes())
        self.assertEqual([], self.transport.downloads)

    async def test_bundling_failure_skips_transfer(self):
        self.backend.bundle_result = BundlingError("backend fault")

        with self.assertRaises(BundlingError):
            await self.downloads.download_folder("docs/", self.tmp)

        self.assertEqual([], self.transport.downloads)
        self.assertEqual([], list(self.tmp.iterdir()))

    async def test_download_folder_rejects_root(self):
        with self.assertRaises(BundlingError):
            await self.downloads.download_folder("", self.tmp)
        self.assertEqual([], self.backend.bundle_calls)

    async def test_preview_url_is_a_read_authorization(self):
        url = await self.downloads.preview_url("docs/guide.pdf")

        self.assertTrue(url.startswith("https://signed.example/docs/guide.pdf"))
        self.assertEqual([("docs/guide.pdf", Operation.READ)], self.backend.authorize_calls)


class TransferAuthorizerTests(unittest.IsolatedAsyncioTestCase):
    async def test_rejects_mismatched_authorization(self):
        class WrongBackend(FakeBackend):
            async def authorize(self, key, operation):
                authorization = await super().authorize("other.txt", operation)
                return authorization

        authorizer = TransferAuthorizer(WrongBackend())
        with self.assertRaises(AuthorizationError):
            await authorizer.authorize("a.txt", Operation.READ)

    async def test_rejects_empty_key(self):
        with self.assertRaises(AuthorizationError):
            await TransferAuthorizer(FakeBackend()).authorize("", Operation.WRITE)

    async def test_times_out_as_authorization_error(self):

        class SlowBackend(FakeBackend):
            async def authorize(self, key, operation):
                await asyncio.sleep(1)

        authorizer = TransferAuthorizer(SlowBackend(), timeout=0.01)
        with self.assertRaises(AuthorizationError):
            await authorizer.authorize("a.txt", Operation.READ)


if __name__ == "__main__":
    unittest.main()
