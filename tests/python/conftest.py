"""
Shared fakes: an in-memory counter store speaking the Redis subset the API
uses. Its clock only moves through ``advance`` and EXPIRE deadlines follow it.
"""

import pytest


class FakeCounterStore:
    provider = "upstash"
    configured = True

    def __init__(self):
        self.now = 0.0
        self.values = {}
        self.sorted_sets = {}
        self.expiries = {}
        self.deadlines = {}
        self.pipelines = []

    def advance(self, seconds):
        self.now += seconds

    def _evict_expired(self):
        for key, deadline in list(self.deadlines.items()):
            if deadline <= self.now:
                self.values.pop(key, None)
                self.sorted_sets.pop(key, None)
                del self.deadlines[key]

    async def pipeline(self, commands):
        self.pipelines.append(commands)
        return [self._run(command) for command in commands]

    async def command(self, command):
        return self._run(command)

    def _run(self, command):
        self._evict_expired()
        name, *args = command
        if name == "INCR":
            self.values[args[0]] = int(self.values.get(args[0], 0)) + 1
            return self.values[args[0]]
        if name == "EXPIRE":
            self.expiries[args[0]] = args[1]
            self.deadlines[args[0]] = self.now + args[1]
            return 1
        if name == "ZINCRBY":
            key, increment, member = args
            scores = self.sorted_sets.setdefault(key, {})
            scores[member] = scores.get(member, 0) + increment
            return str(scores[member])
        if name == "MGET":
            return [self.values.get(key) for key in args]
        if name == "ZREVRANGE":
            ranked = sorted(self.sorted_sets.get(args[0], {}).items(), key=lambda pair: -pair[1])
            flat = []
            for member, score in ranked[: args[2] + 1]:
                flat.extend([member, str(score)])
            return flat
        if name == "SET":
            key, value = args[0], args[1]
            if "NX" in args and key in self.values:
                return None
            self.values[key] = value
            if "EX" in args:
                self.deadlines[key] = self.now + int(args[args.index("EX") + 1])
            return "OK"
        if name == "EXISTS":
            return int(args[0] in self.values)
        raise ValueError(f"unsupported command {name}")


class UnreachableCounterStore:
    """Configured, but every call fails the way the REST store does when it is down."""

    provider = "upstash"
    configured = True

    async def pipeline(self, commands):
        return None

    async def command(self, command):
        return None


@pytest.fixture
def counter_store():
    return FakeCounterStore()


@pytest.fixture
def unreachable_store():
    return UnreachableCounterStore()
