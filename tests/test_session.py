import asyncio
from unittest.mock import AsyncMock

from chat_fixtures import ChatTestCase

from localchat.gateway import Gateway
from localchat.models import Message, User
from localchat.session import handle_disconnect, handle_ws_message


class TestJoin(ChatTestCase):
    async def test_alice_and_bob_join_general(self):
        alice = await self.join("Alice")

        success = alice.last("joinSuccess")
        self.assertEqual(success["username"], "Alice")
        self.assertFalse(success["isAdmin"])
        self.assertEqual(alice.last("onlineUsers"), [{"username": "Alice", "userId": success["userId"]}])

        alice.clear()
        bob = await self.join("Bob")

        joined = alice.events("userJoined")
        self.assertEqual(len(joined), 1)
        self.assertEqual(joined[0]["username"], "Bob")
        self.assertEqual(joined[0]["message"], "Bob joined the chat")
        self.assertEqual([u["username"] for u in alice.last("onlineUsers")], ["Alice", "Bob"])
        # the joiner never hears about itself
        self.assertEqual(bob.events("userJoined"), [])
        self.assertEqual(bob.names()[-1], "joinSuccess")

    async def test_join_creates_and_reuses_user(self):
        first = await self.join("Alice")
        await handle_disconnect(self.core, first.id)
        second = await self.join("Alice")

        self.assertEqual(self.user_id(first), self.user_id(second))
        user = await User.get(username="Alice")
        self.assertTrue(user.is_online)
        self.assertEqual(user.socket_id, second.id)

    async def test_username_is_sanitized(self):
        conn = await self.join("<b>Dave</b>")
        self.assertEqual(conn.last("joinSuccess")["username"], "Dave")

    async def test_empty_username_rejected(self):
        conn = await self.join("<script>alert(1)</script>")

        self.assertEqual(conn.events("error"), ["Invalid username."])
        self.assertEqual(len(self.core.registry), 0)
        self.assertEqual(await User.all().count(), 0)

    async def test_username_length_enforced(self):
        short = await self.join("A")
        long = await self.join("x" * 21)

        self.assertIn("between 2 and 20", short.last("error"))
        self.assertIn("between 2 and 20", long.last("error"))
        self.assertEqual(len(self.core.registry), 0)

    async def test_blocked_user_rejected_before_registration(self):
        await User.create(username="Eve", is_blocked=True)

        conn = await self.join("Eve")

        self.assertEqual(conn.events("error"), ["You have been blocked from the chat."])
        self.assertNotIn(conn.id, self.core.registry)
        self.assertEqual(self.core.hub.members(self.general.id), set())

    async def test_admin_with_wrong_password_changes_nothing(self):
        conn = await self.join("admin", password="wrong")

        self.assertEqual(conn.events("error"), ["Invalid admin password"])
        self.assertEqual(await User.all().count(), 0)
        self.assertEqual(len(self.core.registry), 0)

    async def test_admin_wrong_password_leaves_existing_record_untouched(self):
        await User.create(username="Admin", is_admin=False, is_online=False)

        await self.join("Admin", password="nope")

        user = await User.get(username="Admin")
        self.assertFalse(user.is_admin)
        self.assertFalse(user.is_online)

    async def test_admin_with_password_is_granted_admin(self):
        conn = await self.join_admin()

        self.assertTrue(conn.last("joinSuccess")["isAdmin"])
        self.assertTrue((await User.get(username="admin")).is_admin)

    async def test_admin_name_is_case_insensitive(self):
        conn = await self.join("ADMIN")
        self.assertEqual(conn.events("error"), ["Invalid admin password"])

    async def test_unknown_room_rejected(self):
        conn = self.connect()
        await self.send(conn, "join", username="Alice", roomId=424242)

        self.assertEqual(conn.events("error"), ["Room not found"])
        self.assertEqual(len(self.core.registry), 0)

    async def test_persistence_failure_leaves_no_entry(self):
        self.gateway.failing.add("create_user")

        conn = await self.join("Alice")

        self.assertEqual(conn.events("error"), ["Failed to join room"])
        self.assertEqual(len(self.core.registry), 0)
        self.assertEqual(self.core.hub.members(self.general.id), set())

    async def test_rejoin_into_other_room_moves_connection(self):
        alice = await self.join("Alice")
        bob = await self.join("Bob")
        bob.clear()

        await self.join("Alice", room=self.random, conn=alice)

        self.assertEqual(self.core.registry.get(alice.id).room_id, self.random.id)
        self.assertEqual(self.core.hub.members(self.general.id), {bob.id})
        self.assertEqual(bob.last("userLeft")["message"], "Alice left the chat")
        self.assertEqual([u["username"] for u in bob.last("onlineUsers")], ["Bob"])

    async def test_rejoin_as_other_user_releases_previous_user(self):
        shared = await self.join("Alice")
        carol = await self.join("Carol")
        await self.send(shared, "typing", roomId=self.general.id, isTyping=True)
        carol.clear()

        await self.join("Bob", conn=shared)

        self.assertEqual(carol.names()[0], "userLeft")
        self.assertEqual(carol.last("userLeft"), {"username": "Alice", "message": "Alice left the chat"})
        self.assertEqual(carol.last("userJoined")["username"], "Bob")
        self.assertEqual(sorted(u["username"] for u in carol.last("onlineUsers")), ["Bob", "Carol"])
        self.assertEqual(carol.last("typingUsers"), [])
        self.assertEqual(shared.events("userLeft"), [])
        alice_row = await User.get(username="Alice")
        self.assertFalse(alice_row.is_online)
        self.assertIsNone(alice_row.socket_id)

    async def test_rejoin_same_user_same_room_is_quiet(self):
        alice = await self.join("Alice")
        bob = await self.join("Bob")
        bob.clear()

        await self.join("Alice", conn=alice)

        self.assertEqual(bob.events("userLeft"), [])
        self.assertTrue((await User.get(username="Alice")).is_online)

    async def test_disconnect_during_join_installs_nothing(self):
        self.gateway.paused.add("create_user")
        conn = self.connect()
        task = asyncio.create_task(
            handle_ws_message(self.core, conn.id, {"type": "join", "data": {"username": "Alice", "roomId": self.general.id}})
        )
        await self.gateway.entered.wait()

        await handle_disconnect(self.core, conn.id)
        self.gateway.release.set()
        await task

        self.assertNotIn(conn.id, self.core.registry)
        self.assertEqual(conn.events("joinSuccess"), [])
        self.assertFalse((await User.get(username="Alice")).is_online)


class TestOnlineUsersQuery(ChatTestCase):
    async def test_reply_goes_to_requester_only(self):
        alice = await self.join("Alice")
        observer = self.connect()
        alice.clear()

        await self.send(observer, "getOnlineUsers", roomId=self.general.id)

        self.assertEqual([u["username"] for u in observer.last("onlineUsers")], ["Alice"])
        self.assertEqual(alice.frames, [])

    async def test_missing_room_is_noop(self):
        observer = self.connect()
        await self.send(observer, "getOnlineUsers")
        self.assertEqual(observer.frames, [])

    async def test_list_matches_live_entries(self):
        alice = await self.join("Alice")
        await self.join("Bob")
        await self.join("Carol", room=self.random)
        await handle_disconnect(self.core, alice.id)

        observer = self.connect()
        await self.send(observer, "getOnlineUsers", roomId=self.general.id)

        expected = [
            {"username": e.username, "userId": e.user_id} for e in self.core.registry.in_room(self.general.id)
        ]
        self.assertEqual(observer.last("onlineUsers"), expected)
        self.assertEqual([u["username"] for u in expected], ["Bob"])


class TestSendMessage(ChatTestCase):
    async def test_message_broadcast_to_room_including_sender(self):
        alice = await self.join("Alice")
        bob = await self.join("Bob")
        carol = await self.join("Carol", room=self.random)

        await self.send(alice, "sendMessage", content="hello <b>world</b>", roomId=self.general.id)

        for conn in (alice, bob):
            message = conn.last("newMessage")
            self.assertEqual(message["content"], "hello <b>world</b>")
            self.assertEqual(message["user"]["username"], "Alice")
            self.assertIn("createdAt", message)
        self.assertEqual(carol.events("newMessage"), [])
        self.assertEqual(await Message.all().count(), 1)

    async def test_empty_after_sanitizing_is_dropped_silently(self):
        alice = await self.join("Alice")
        bob = await self.join("Bob")

        await self.send(alice, "sendMessage", content="<script>x()</script>   ", roomId=self.general.id)

        self.assertEqual(alice.events("newMessage") + bob.events("newMessage"), [])
        self.assertEqual(alice.events("error"), [])
        self.assertEqual(await Message.all().count(), 0)

    async def test_unjoined_sender_is_ignored(self):
        conn = self.connect()
        await self.send(conn, "sendMessage", content="hi", roomId=self.general.id)

        self.assertEqual(conn.frames, [])
        self.assertEqual(await Message.all().count(), 0)

    async def test_room_must_match_registered_room(self):
        alice = await self.join("Alice")
        await self.send(alice, "sendMessage", content="hi", roomId=self.random.id)
        self.assertEqual(await Message.all().count(), 0)

    async def test_too_long_message_rejected(self):
        alice = await self.join("Alice")
        await self.send(alice, "sendMessage", content="x" * 1001, roomId=self.general.id)

        self.assertEqual(alice.last("error"), "Message is too long.")
        self.assertEqual(await Message.all().count(), 0)

    async def test_storage_failure_reports_generic_error(self):
        alice = await self.join("Alice")
        self.gateway.failing.add("create_message")

        await self.send(alice, "sendMessage", content="hi", roomId=self.general.id)

        self.assertEqual(alice.last("error"), "Failed to send message")
        self.assertEqual(alice.events("newMessage"), [])
        self.assertIn(alice.id, self.core.registry)


class TestTyping(ChatTestCase):
    async def test_typing_broadcast_excludes_sender(self):
        alice = await self.join("Alice")
        bob = await self.join("Bob")

        await self.send(alice, "typing", roomId=self.general.id, isTyping=True)
        self.assertEqual(bob.last("typingUsers"), ["Alice"])
        self.assertEqual(alice.events("typingUsers"), [])

        await self.send(alice, "typing", roomId=self.general.id, isTyping=False)
        self.assertEqual(bob.last("typingUsers"), [])

    async def test_sending_does_not_clear_typing(self):
        alice = await self.join("Alice")
        await self.join("Bob")

        await self.send(alice, "typing", roomId=self.general.id, isTyping=True)
        await self.send(alice, "sendMessage", content="done", roomId=self.general.id)

        self.assertEqual(self.core.registry.typing_usernames(self.general.id), ["Alice"])

    async def test_unjoined_typing_is_noop(self):
        conn = self.connect()
        await self.send(conn, "typing", roomId=self.general.id, isTyping=True)

        self.assertEqual(conn.frames, [])
        self.assertEqual(self.core.registry.typing_usernames(self.general.id), [])


class TestDisconnect(ChatTestCase):
    async def test_disconnect_notifies_room(self):
        alice = await self.join("Alice")
        bob = await self.join("Bob")
        await self.send(alice, "typing", roomId=self.general.id, isTyping=True)
        bob.clear()

        await handle_disconnect(self.core, alice.id)

        self.assertEqual(bob.last("userLeft"), {"username": "Alice", "message": "Alice left the chat"})
        self.assertEqual([u["username"] for u in bob.last("onlineUsers")], ["Bob"])
        self.assertEqual(bob.last("typingUsers"), [])
        user = await User.get(username="Alice")
        self.assertFalse(user.is_online)
        self.assertIsNone(user.socket_id)

    async def test_unjoined_disconnect_is_noop(self):
        observer = await self.join("Bob")
        observer.clear()
        self.core.gateway = AsyncMock(spec=Gateway)
        conn = self.connect()

        await handle_disconnect(self.core, conn.id)

        self.assertEqual(self.core.gateway.method_calls, [])
        self.assertEqual(observer.frames, [])

    async def test_second_disconnect_is_noop(self):
        alice = await self.join("Alice")
        await handle_disconnect(self.core, alice.id)
        await handle_disconnect(self.core, alice.id)
        self.assertEqual(len(self.core.registry), 0)

    async def test_other_tab_keeps_user_online(self):
        first = await self.join("Alice")
        await self.join("Alice", room=self.random)

        await handle_disconnect(self.core, first.id)

        self.assertTrue((await User.get(username="Alice")).is_online)

    async def test_storage_failure_still_cleans_up(self):
        alice = await self.join("Alice")
        bob = await self.join("Bob")
        self.gateway.failing.add("update_user")

        await handle_disconnect(self.core, alice.id)

        self.assertNotIn(alice.id, self.core.registry)
        self.assertEqual(bob.last("userLeft")["username"], "Alice")


class TestDispatch(ChatTestCase):
    async def test_unknown_event(self):
        conn = self.connect()
        await handle_ws_message(self.core, conn.id, {"type": "dance"})
        self.assertEqual(conn.events("error"), ["Unknown event"])

    async def test_malformed_payload(self):
        conn = self.connect()
        await handle_ws_message(self.core, conn.id, {"type": "join", "data": {"username": "Alice"}})
        await handle_ws_message(self.core, conn.id, ["not", "a", "frame"])
        self.assertEqual(conn.events("error"), ["Invalid payload", "Invalid payload"])

    async def test_flat_frames_are_accepted(self):
        conn = self.connect()
        await handle_ws_message(
            self.core, conn.id, {"type": "join", "username": "Alice", "roomId": str(self.general.id)}
        )
        self.assertEqual(conn.last("joinSuccess")["username"], "Alice")

    async def test_unexpected_exception_is_contained(self):
        alice = await self.join("Alice")
        self.core.gateway.create_message = AsyncMock(side_effect=RuntimeError("boom"))

        with self.assertLogs("localchat", level="ERROR"):
            await self.send(alice, "sendMessage", content="hi", roomId=self.general.id)

        self.assertEqual(alice.last("error"), "Failed to send message")
