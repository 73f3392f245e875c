"""Pairing and signal relay for anonymous video chat.

The Matchmaker keeps three pieces of process-wide state: the list of
connections waiting for a partner, the symmetric pair table and the set of
online connections. Every mutation, and the notifications it causes, happen
under one lock, so each client sees events in the order the state changed.

The server never puts an abandoned partner back in the waiting list. A
client that receives ``partner_hangup`` has to send ``join`` again.
"""
import logging
import threading
from enum import Enum

logger = logging.getLogger(__name__)


class Event(Enum):
    JOIN = 'join'
    HANGUP = 'hangup'
    DISCONNECT = 'disconnect'
    OFFER = 'offer'
    ANSWER = 'answer'
    ICE_CANDIDATE = 'ice-candidate'


# Events whose payload is relayed to another connection untouched
SIGNALS = (Event.OFFER, Event.ANSWER, Event.ICE_CANDIDATE)


class Matchmaker:
    """Matches waiting connections into pairs.

    ``notify`` is called as ``notify(event, data, to)`` for every outgoing
    message; ``to=None`` means broadcast to everyone. It must not call back
    into the matchmaker.
    """

    def __init__(self, notify):
        self.notify = notify
        self.waiting = []   # connection ids, most recent last
        self.pairs = {}     # connection id -> partner connection id
        self.online = set()
        self.lock = threading.Lock()

    def handle(self, event, sid, payload=None):
        """Apply one client event for connection ``sid``."""
        if event is Event.JOIN:
            return self.join(sid)
        elif event is Event.HANGUP:
            return self.cleanup(sid)
        elif event is Event.DISCONNECT:
            return self.disconnect(sid)
        elif event in SIGNALS:
            return self.route_signal(event, sid, payload)
        raise ValueError('Unhandled event: %r' % (event,))

    def connect(self, sid):
        with self.lock:
            self.online.add(sid)
            count = len(self.online)
            logger.info("User connected: %s (%d online)", sid, count)
            self.notify('user_count', count, None)
        return count

    def join(self, sid):
        """Pair ``sid`` with the most recent waiter, or make it wait.

        Returns the partner id when a pair was made, otherwise None.
        """
        with self.lock:
            if sid not in self.online:
                logger.warning("Ignoring join from disconnected %s", sid)
                return None
            if sid in self.pairs or sid in self.waiting:
                logger.warning("Ignoring duplicate join from %s", sid)
                return None
            if not self.waiting:
                self.waiting.append(sid)
                logger.info("User %s is waiting (%d in queue)", sid, len(self.waiting))
                return None
            partner = self.waiting.pop()
            self.pairs[sid] = partner
            self.pairs[partner] = sid
            logger.info("Pair created: %s <-> %s", sid, partner)
            self.notify('partner_found', {'partnerId': partner}, sid)
            self.notify('partner_found', {'partnerId': sid}, partner)
        return partner

    def cleanup(self, sid):
        """Take ``sid`` out of the pool and release its partner, if any.

        Safe to call any number of times. Returns the released partner id.
        """
        with self.lock:
            return self._release(sid)

    def disconnect(self, sid):
        with self.lock:
            partner = self._release(sid)
            self.online.discard(sid)
            count = len(self.online)
            logger.info("User disconnected: %s (%d online)", sid, count)
            self.notify('user_count', count, None)
        return partner

    def _release(self, sid):
        # caller holds self.lock
        partner = self.pairs.pop(sid, None)
        if partner is not None:
            self.pairs.pop(partner, None)
        if sid in self.waiting:
            self.waiting.remove(sid)
        if partner is not None:
            logger.info("User %s left %s", sid, partner)
            self.notify('partner_hangup', {}, partner)
        return partner

    def route_signal(self, event, sid, payload):
        """Forward an offer, answer or ICE candidate to ``payload['target']``.

        The target is not checked against the pair table; messages to a
        connection that no longer exists are dropped by the transport.
        Returns True when the message was handed to the transport.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get('target'), str):
            logger.warning("Dropping malformed %s from %s", event.value, sid)
            return False
        data = {k: v for k, v in payload.items() if k != 'target'}
        data['source'] = sid
        logger.debug("Relaying %s: %s -> %s", event.value, sid, payload['target'])
        self.notify(event.value, data, payload['target'])
        return True

    def partner_of(self, sid):
        with self.lock:
            return self.pairs.get(sid)

    def stats(self):
        with self.lock:
            return {
                'online': len(self.online),
                'waiting': len(self.waiting),
                'paired': len(self.pairs),
            }
