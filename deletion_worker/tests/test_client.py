import json
import unittest

import requests
import responses

from deletion_worker.client import (
    HttpDeletionClient,
    InMemoryDeletionClient,
    RemoteDeletionError,
    parse_confirmed,
)

ENDPOINT = "https://storage.example.test/api/delete-files"


class HttpDeletionClientTests(unittest.TestCase):
    def setUp(self):
        self.client = HttpDeletionClient(ENDPOINT, timeout=5)

    def tearDown(self):
        self.client.close()

    @responses.activate
    def test_posts_ids_with_bearer_token(self):
        responses.add(
            responses.POST,
            ENDPOINT,
            json={"message": {"confirmed": ["a", "c"]}},
            status=200,
        )

        confirmed = self.client.delete_files(["a", "b", "c"], "tok")

        self.assertEqual(confirmed, ["a", "c"])
        self.assertEqual(len(responses.calls), 1)
        request = responses.calls[0].request
        self.assertEqual(request.headers["Authorization"], "Bearer tok")
        self.assertEqual(json.loads(request.body), {"fileIds": ["a", "b", "c"]})

    @responses.activate
    def test_server_error_raises(self):
        responses.add(responses.POST, ENDPOINT, json={"error": "boom"}, status=500)
        with self.assertRaises(requests.HTTPError):
            self.client.delete_files(["a"], "tok")

    @responses.activate
    def test_malformed_body_raises(self):
        responses.add(responses.POST, ENDPOINT, json={"message": "ok"}, status=200)
        with self.assertRaises(RemoteDeletionError):
            self.client.delete_files(["a"], "tok")

    @responses.activate
    def test_non_json_body_raises(self):
        responses.add(responses.POST, ENDPOINT, body="not json", status=200)
        with self.assertRaises(RemoteDeletionError):
            self.client.delete_files(["a"], "tok")

    def test_requires_endpoint(self):
        with self.assertRaises(ValueError):
            HttpDeletionClient("")

    def test_connection_pool_fits_concurrent_chunks(self):
        client = HttpDeletionClient(ENDPOINT, pool_size=20)
        try:
            self.assertEqual(client.session.get_adapter(ENDPOINT)._pool_maxsize, 20)
        finally:
            client.close()


class ParseConfirmedTests(unittest.TestCase):
    def test_empty_confirmation_is_valid(self):
        self.assertEqual(parse_confirmed({"message": {"confirmed": []}}), [])

    def test_missing_message_raises(self):
        with self.assertRaises(RemoteDeletionError):
            parse_confirmed([])


class InMemoryDeletionClientTests(unittest.TestCase):
    def test_confirms_all_but_rejected(self):
        client = InMemoryDeletionClient(reject={"b"})
        self.assertEqual(client.delete_files(["a", "b", "c"], "tok"), ["a", "c"])
        self.assertEqual(client.calls, [(["a", "b", "c"], "tok")])


if __name__ == "__main__":
    unittest.main()
