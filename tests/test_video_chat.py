import unittest

import video_chat
from matchmaker import Matchmaker


class SocketTests(unittest.TestCase):
    def setUp(self):
        # Fresh matchmaking state between tests
        video_chat.matchmaker = Matchmaker(video_chat.notify)
        self.clients = []

    def tearDown(self):
        for client in self.clients:
            if client.is_connected():
                client.disconnect()

    def connect(self):
        client = video_chat.socketio.test_client(video_chat.app)
        self.assertTrue(client.is_connected())
        self.clients.append(client)
        return client

    def received(self, client, name):
        return [msg['args'][0] if msg['args'] else None
                for msg in client.get_received() if msg['name'] == name]

    def test_two_joins_make_a_pair(self):
        a = self.connect()
        b = self.connect()
        a.emit('join')
        self.assertEqual(self.received(a, 'partner_found'), [])
        b.emit('join')
        self.assertEqual(self.received(a, 'partner_found'), [{'partnerId': b.get_sid()}])
        self.assertEqual(self.received(b, 'partner_found'), [{'partnerId': a.get_sid()}])
        self.assertEqual(video_chat.matchmaker.stats(), {'online': 2, 'waiting': 0, 'paired': 2})

    def test_hangup_then_rejoin(self):
        a, b, c = self.connect(), self.connect(), self.connect()
        a.emit('join')
        b.emit('join')
        a.get_received()
        b.get_received()

        a.emit('hangup')
        self.assertEqual(self.received(b, 'partner_hangup'), [{}])
        self.assertEqual(self.received(a, 'partner_hangup'), [])
        self.assertEqual(video_chat.matchmaker.pairs, {})
        self.assertEqual(video_chat.matchmaker.waiting, [])

        b.emit('join')
        self.assertEqual(video_chat.matchmaker.waiting, [b.get_sid()])
        c.emit('join')
        self.assertEqual(video_chat.matchmaker.partner_of(b.get_sid()), c.get_sid())
        self.assertEqual(self.received(c, 'partner_found'), [{'partnerId': b.get_sid()}])

    def test_disconnect_notifies_partner_once(self):
        a, b = self.connect(), self.connect()
        a.emit('join')
        b.emit('join')
        a.get_received()
        b.disconnect()
        self.assertEqual(self.received(a, 'partner_hangup'), [{}])
        self.assertEqual(video_chat.matchmaker.pairs, {})

    def test_signals_are_relayed_with_source(self):
        a, b = self.connect(), self.connect()
        a.emit('join')
        b.emit('join')
        a.get_received()
        b.get_received()

        sdp = {'type': 'offer', 'sdp': 'v=0'}
        a.emit('offer', {'target': b.get_sid(), 'sdp': sdp})
        self.assertEqual(self.received(b, 'offer'), [{'sdp': sdp, 'source': a.get_sid()}])

        b.emit('answer', {'target': a.get_sid(), 'sdp': {'type': 'answer'}})
        self.assertEqual(self.received(a, 'answer'), [{'sdp': {'type': 'answer'}, 'source': b.get_sid()}])

        b.emit('ice-candidate', {'target': a.get_sid(), 'candidate': {'candidate': 'c0'}})
        self.assertEqual(self.received(a, 'ice-candidate'), [{'candidate': {'candidate': 'c0'}, 'source': b.get_sid()}])

    def test_offer_to_unknown_target_is_dropped(self):
        a = self.connect()
        a.emit('offer', {'target': 'no-such-sid', 'sdp': 'x'})
        a.emit('offer', 'garbage')
        self.assertEqual(self.received(a, 'offer'), [])
        self.assertTrue(a.is_connected())

    def test_online_count(self):
        a = self.connect()
        a.get_received()
        b = self.connect()
        self.assertEqual(self.received(a, 'user_count'), [2])
        b.disconnect()
        self.assertEqual(self.received(a, 'user_count'), [1])


class HttpTests(unittest.TestCase):
    def setUp(self):
        video_chat.matchmaker = Matchmaker(video_chat.notify)
        self.c = video_chat.app.test_client()

    def test_health(self):
        r = self.c.get('/health')
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.content_type.startswith('text/plain'))

    def test_stats(self):
        r = self.c.get('/stats')
        self.assertEqual(r.get_json(), {'online': 0, 'waiting': 0, 'paired': 0})

    def test_index_embeds_ice_servers(self):
        r = self.c.get('/')
        self.assertEqual(r.status_code, 200)
        self.assertIn(b'stun:stun.l.google.com:19302', r.data)
        self.assertIn(b"socket.emit('join')", r.data)


if __name__ == '__main__':
    unittest.main()
