import threading
import unittest

from docqa_bot.errors import NoSessionError
from docqa_bot.qa_chain import build_prompt
from docqa_bot.session_store import Session, SessionStore


def _session(chat_id: int, text: str) -> Session:
    return Session(chat_id=chat_id, document_text=text, prompt=build_prompt(text), filename="doc.txt")


class TestSessionStore(unittest.TestCase):
    def setUp(self):
        self.store = SessionStore()

    def test_put_get_delete(self):
        session = _session(1, "first")
        self.store.put(session)
        self.assertIs(self.store.get(1), session)
        self.assertIn(1, self.store)
        self.assertEqual(len(self.store), 1)

        self.assertTrue(self.store.delete(1))
        self.assertIsNone(self.store.get(1))
        self.assertNotIn(1, self.store)

    def test_delete_missing_is_noop(self):
        self.assertFalse(self.store.delete(42))
        self.assertEqual(len(self.store), 0)

    def test_delete_with_stale_session_id_keeps_current_session(self):
        old = _session(3, "old text")
        new = _session(3, "new text")
        self.assertNotEqual(old.session_id, new.session_id)
        self.store.put(old)
        self.store.put(new)

        self.assertFalse(self.store.delete(3, session_id=old.session_id))
        self.assertIs(self.store.get(3), new)
        self.assertTrue(self.store.delete(3, session_id=new.session_id))
        self.assertNotIn(3, self.store)

    def test_put_replaces_previous_session(self):
        old = _session(7, "old text")
        new = _session(7, "new text")
        self.store.put(old)
        self.store.put(new)
        self.assertIs(self.store.get(7), new)
        self.assertEqual(self.store.get(7).document_text, "new text")
        self.assertEqual(len(self.store), 1)

    def test_require_raises_for_unknown_chat(self):
        with self.assertRaises(NoSessionError) as ctx:
            self.store.require(99)
        self.assertEqual(ctx.exception.chat_id, 99)

    def test_each_session_owns_its_lock(self):
        first = _session(1, "a")
        second = _session(2, "b")
        self.assertIsNot(first.lock, second.lock)

    def test_concurrent_mutations_from_many_chats(self):
        start = threading.Barrier(8)
        errors = []

        def _worker(offset: int):
            try:
                start.wait(timeout=5)
                for idx in range(200):
                    chat_id = offset * 1000 + idx
                    self.store.put(_session(chat_id, f"doc {chat_id}"))
                    self.assertIsNotNone(self.store.get(chat_id))
                    if idx % 2:
                        self.store.delete(chat_id)
            except Exception as exc:  # pragma: no cover - surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=_worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(errors, [])
        self.assertEqual(len(self.store), 8 * 100)


if __name__ == "__main__":
    unittest.main()
