import json
import unittest
from typing import List, Tuple

from chat_client import conversation_store, session
from chat_client.config import ClientConfig
from chat_client.errors import AuthenticationError, NetworkError, ProtocolError
from chat_client.live_channel import ChannelState
from chat_client.main_context import MainContext
from chat_client.models import Message
from chat_client.session import SessionController
from helpers.session_fakes import ALICE, BOB, CAROL, DeferredSpawn, FakeChannel, FakeDirectory, FakeHistory


class SessionControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.main_context = MainContext()
        self.directory = FakeDirectory()
        self.history = FakeHistory()
        self.spawn = DeferredSpawn()
        self.channels: List[FakeChannel] = []
        self.events: List[Tuple[str, object]] = []
        self.controller = self._controller(ClientConfig(base_url="http://chat.test"))

    def _controller(self, config: ClientConfig) -> SessionController:
        controller = SessionController(
            config,
            self.main_context,
            directory=self.directory,
            history=self.history,
            channel_factory=self._make_channel,
            spawn=self.spawn,
        )
        controller.add_listener(lambda event, payload: self.events.append((event, payload)))
        return controller

    def _make_channel(self, url: str, handler, *, connect_timeout_s: float = 10.0) -> FakeChannel:
        channel = FakeChannel(url, handler, connect_timeout_s=connect_timeout_s)
        self.channels.append(channel)
        return channel

    def _settle(self) -> None:
        while self.spawn.jobs or self.main_context.pending():
            self.spawn.run_all()
            self.main_context.drain()

    def _login_open(self, username: str = "alice") -> FakeChannel:
        self.controller.login(username)
        self._settle()
        channel = self.channels[-1]
        channel.simulate_open()
        self._settle()
        return channel

    def _event_names(self) -> List[str]:
        return [name for name, _ in self.events]

    def test_login_sets_identity_opens_channel_and_loads_roster_without_self(self):
        self.controller.login("alice")
        self._settle()

        self.assertEqual(self.directory.logins, ["alice"])
        self.assertEqual(self.controller.state.identity, ALICE)
        self.assertEqual(self.controller.store.roster, [BOB, CAROL])
        self.assertNotIn(ALICE.id, [peer.id for peer in self.controller.store.roster])
        self.assertEqual(len(self.channels), 1)
        self.assertEqual(self.channels[0].url, "ws://chat.test/chat")
        self.assertEqual(self.channels[0].state, ChannelState.CONNECTING)
        self.assertIn(session.EVENT_LOGGED_IN, self._event_names())

    def test_login_continuation_waits_for_main_context(self):
        self.controller.login("alice")
        self.spawn.run_all()

        self.assertIsNone(self.controller.state)
        self.main_context.drain()
        self.assertEqual(self.controller.state.identity, ALICE)

    def test_blank_username_fails_without_network_call(self):
        self.controller.login("   ")

        self.assertEqual(self.directory.logins, [])
        self.assertEqual(self.events[-1][0], session.EVENT_LOGIN_FAILED)
        self.assertIsInstance(self.events[-1][1], AuthenticationError)

    def test_directory_failure_aborts_login(self):
        self.directory.login_error = NetworkError("connection refused")

        self.controller.login("alice")
        self._settle()

        self.assertIsNone(self.controller.state)
        self.assertEqual(self.channels, [])
        name, error = self.events[-1]
        self.assertEqual(name, session.EVENT_LOGIN_FAILED)
        self.assertIsInstance(error, AuthenticationError)
        self.assertIsInstance(error.__cause__, NetworkError)

    def test_roster_failure_is_not_fatal(self):
        self.directory.roster_error = ProtocolError("bad body")

        channel = self._login_open()

        self.assertEqual(self.controller.store.roster, [])
        self.assertTrue(channel.is_open())
        self.assertIn((session.EVENT_CHANNEL, ChannelState.OPEN), self.events)
        self.assertIn(session.EVENT_ERROR, self._event_names())

    def test_history_result_replaces_active_messages_in_fetched_order(self):
        history = [Message(ALICE, BOB, "1"), Message(BOB, ALICE, "2"), Message(ALICE, BOB, "3")]
        self.history.histories[BOB.id] = history
        self._login_open()

        self.controller.select_peer(BOB)
        self._settle()

        self.assertEqual(self.history.calls, [(ALICE.id, BOB.id)])
        self.assertEqual(self.controller.store.active_messages, history)

    def test_late_history_for_previous_selection_is_discarded(self):
        self.history.histories[BOB.id] = [Message(ALICE, BOB, "for bob")]
        self.history.histories[CAROL.id] = [Message(CAROL, ALICE, "for carol")]
        self._login_open()

        self.controller.select_peer(BOB)
        self.controller.select_peer(CAROL)
        self.spawn.run(f"history-{CAROL.id}")
        self.main_context.drain()
        self.spawn.run(f"history-{BOB.id}")
        self.main_context.drain()

        self.assertEqual(self.controller.store.selected_peer, CAROL)
        self.assertEqual([m.content for m in self.controller.store.active_messages], ["for carol"])

    def test_history_failure_degrades_to_empty_conversation(self):
        self.history.errors[BOB.id] = NetworkError("timeout")
        self._login_open()

        self.controller.select_peer(BOB)
        self._settle()

        self.assertEqual(self.controller.store.active_messages, [])
        self.assertEqual(self.events[-1][0], session.EVENT_ERROR)

    def test_rejected_sends_produce_no_frame(self):
        self.assertFalse(self.controller.send_message("hi"))

        channel = self._login_open()
        self.assertFalse(self.controller.send_message("hi"))

        self.controller.select_peer(BOB)
        self._settle()
        self.assertFalse(self.controller.send_message(""))
        self.assertFalse(self.controller.send_message("   "))

        channel.simulate_close()
        self._settle()
        self.assertFalse(self.controller.send_message("hi"))

        self.assertEqual(channel.sent, [])
        self.assertEqual(self.controller.store.active_messages, [])

    def test_valid_send_emits_one_trimmed_frame_without_local_append(self):
        channel = self._login_open()
        self.controller.select_peer(BOB)
        self._settle()

        self.assertTrue(self.controller.send_message("  hi  "))

        self.assertEqual(len(channel.sent), 1)
        self.assertEqual(json.loads(channel.sent[0]), {"sender": "alice", "receiver": "bob", "content": "hi"})
        self.assertEqual(self.controller.store.active_messages, [])

    def test_round_trip_history_then_push(self):
        sent = Message(ALICE, BOB, "hi")
        self.directory.roster = [ALICE, BOB]
        self.history.histories[BOB.id] = [sent]
        channel = self._login_open()
        self.assertEqual(self.controller.store.roster, [BOB])

        self.controller.select_peer(BOB)
        self._settle()
        self.assertEqual(self.controller.store.active_messages, [sent])

        pushed = Message(BOB, ALICE, "hey")
        channel.handler.on_message(pushed)
        self.assertEqual(self.controller.store.active_messages, [sent])
        self.main_context.drain()

        self.assertEqual(self.controller.store.active_messages, [sent, pushed])
        self.assertEqual(self.events[-1], (conversation_store.EVENT_MESSAGE, pushed))

    def test_push_for_other_conversation_is_filtered_by_default(self):
        channel = self._login_open()
        self.controller.select_peer(BOB)
        self._settle()

        channel.handler.on_message(Message(CAROL, ALICE, "psst"))
        self.main_context.drain()

        self.assertEqual(self.controller.store.active_messages, [])

    def test_unfiltered_mode_appends_every_push(self):
        self.controller = self._controller(ClientConfig(base_url="http://chat.test", filter_incoming_by_peer=False))
        channel = self._login_open()
        self.controller.select_peer(BOB)
        self._settle()

        stray = Message(CAROL, ALICE, "psst")
        channel.handler.on_message(stray)
        self.main_context.drain()

        self.assertEqual(self.controller.store.active_messages, [stray])

    def test_channel_close_is_reported_and_not_reopened(self):
        channel = self._login_open()

        channel.simulate_close(1000, "normal", True)
        self._settle()

        self.assertEqual(self.events[-1], (session.EVENT_CHANNEL, ChannelState.CLOSED))
        self.assertEqual(len(self.channels), 1)
        self.assertEqual(self.controller.channel_state, ChannelState.CLOSED)

    def test_relogin_starts_a_fresh_session_and_ignores_old_channel(self):
        old_channel = self._login_open("alice")
        self.controller.select_peer(BOB)
        self._settle()

        new_channel = self._login_open("bob")

        self.assertEqual(old_channel.closed_with, (1000, ""))
        self.assertIsNot(old_channel, new_channel)
        self.assertEqual(self.controller.state.identity, BOB)
        self.assertIsNone(self.controller.store.selected_peer)

        old_channel.handler.on_message(Message(ALICE, BOB, "from old session"))
        old_channel.simulate_close()
        events_before = list(self.events)
        self.main_context.drain()

        self.assertEqual(self.controller.store.active_messages, [])
        self.assertEqual(self.events, events_before)

    def test_superseded_login_result_is_ignored(self):
        self.controller.login("alice")
        self.controller.login("bob")
        self.spawn.run("login-bob")
        self.main_context.drain()
        self.spawn.run("login-alice")
        self.main_context.drain()

        self.assertEqual(self.controller.state.identity, BOB)

    def test_logout_closes_channel(self):
        channel = self._login_open()

        self.controller.logout()

        self.assertEqual(channel.closed_with, (1000, ""))
        self.assertIsNone(self.controller.state)
        self.assertEqual(self.controller.channel_state, ChannelState.DISCONNECTED)


if __name__ == "__main__":
    unittest.main()
