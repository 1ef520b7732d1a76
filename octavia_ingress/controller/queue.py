# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

import heapq
import itertools
import threading
import time

from oslo_log import log as logging

LOG = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 0.005
DEFAULT_MAX_DELAY = 1000
DEFAULT_QPS = 10
DEFAULT_BURST = 100


class ItemExponentialFailureRateLimiter(object):
    """Per item exponential backoff: base_delay * 2 ** failures."""

    def __init__(self, base_delay=DEFAULT_BASE_DELAY,
                 max_delay=DEFAULT_MAX_DELAY):
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures = {}
        self._lock = threading.Lock()

    def when(self, item):
        with self._lock:
            exp = self._failures.get(item, 0)
            self._failures[item] = exp + 1
        # Avoid float overflow, the result is capped anyway.
        if exp > 64:
            return self._max_delay
        return min(self._base_delay * 2 ** exp, self._max_delay)

    def num_requeues(self, item):
        with self._lock:
            return self._failures.get(item, 0)

    def forget(self, item):
        with self._lock:
            self._failures.pop(item, None)


class BucketRateLimiter(object):
    """Overall token bucket shared by all the items."""

    def __init__(self, qps=DEFAULT_QPS, burst=DEFAULT_BURST,
                 clock=time.monotonic):
        self._qps = float(qps)
        self._burst = burst
        self._tokens = float(burst)
        self._clock = clock
        self._last = clock()
        self._lock = threading.Lock()

    def when(self, item):
        with self._lock:
            now = self._clock()
            self._tokens = min(self._burst,
                               self._tokens + (now - self._last) * self._qps)
            self._last = now
            self._tokens -= 1
            if self._tokens >= 0:
                return 0
            return -self._tokens / self._qps

    def num_requeues(self, item):
        return 0

    def forget(self, item):
        pass


class MaxOfRateLimiter(object):
    """Returns the worst delay of all the wrapped limiters."""

    def __init__(self, *limiters):
        self._limiters = limiters

    def when(self, item):
        return max(limiter.when(item) for limiter in self._limiters)

    def num_requeues(self, item):
        return max(limiter.num_requeues(item) for limiter in self._limiters)

    def forget(self, item):
        for limiter in self._limiters:
            limiter.forget(item)


def default_rate_limiter():
    return MaxOfRateLimiter(ItemExponentialFailureRateLimiter(),
                            BucketRateLimiter())


class Queue(object):
    """FIFO work queue that never holds the same item twice.

    An item added while it is waiting in the queue is ignored. An item added
    while it is being processed (between `get` and `done`) is queued again
    only once `done` is called for it, so a single item is never processed
    concurrently.
    """

    def __init__(self):
        self._queue = []
        self._dirty = set()
        self._processing = set()
        self._shutting_down = False
        self._cond = threading.Condition()

    def add(self, item):
        with self._cond:
            if self._shutting_down:
                return
            if item in self._dirty:
                return
            self._dirty.add(item)
            if item in self._processing:
                return
            self._queue.append(item)
            self._cond.notify()

    def __len__(self):
        with self._cond:
            return len(self._queue)

    def get(self, timeout=None):
        """Blocks until an item is available.

        :returns: tuple (item, shutdown), item is None once the queue is
                  shut down and drained or when `timeout` expires.
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._queue or self._shutting_down, timeout)
            if not self._queue:
                return None, self._shutting_down
            item = self._queue.pop(0)
            self._processing.add(item)
            self._dirty.discard(item)
            return item, False

    def done(self, item):
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self):
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    def shutting_down(self):
        with self._cond:
            return self._shutting_down


class DelayingQueue(Queue):
    """Queue able to add items once a delay passes.

    Items waiting for their delay are kept in a heap served by a background
    thread. An item that is already waiting keeps the earliest time it was
    requested for.
    """

    def __init__(self, clock=time.monotonic):
        super(DelayingQueue, self).__init__()
        self._clock = clock
        self._waiting = []
        self._ready_at = {}
        self._counter = itertools.count()
        self._waiting_cond = threading.Condition()
        self._waiting_thread = threading.Thread(target=self._waiting_loop,
                                                name='delaying-queue')
        self._waiting_thread.daemon = True
        self._waiting_thread.start()

    def add_after(self, item, delay):
        if self.shutting_down():
            return
        if delay <= 0:
            self.add(item)
            return

        ready_at = self._clock() + delay
        with self._waiting_cond:
            current = self._ready_at.get(item)
            if current is not None and current <= ready_at:
                return
            self._ready_at[item] = ready_at
            heapq.heappush(self._waiting,
                           (ready_at, next(self._counter), item))
            self._waiting_cond.notify()

    def _add_ready_items(self):
        """Moves all the items whose delay passed to the queue.

        :returns: seconds until the next waiting item is ready or None when
                  nothing is waiting.
        """
        with self._waiting_cond:
            now = self._clock()
            while self._waiting:
                ready_at, _, item = self._waiting[0]
                if ready_at > now:
                    break
                heapq.heappop(self._waiting)
                # Skip entries superseded by an earlier add_after() call.
                if self._ready_at.get(item) == ready_at:
                    del self._ready_at[item]
                    self.add(item)
            if not self._waiting:
                return None
            return self._waiting[0][0] - now

    def _waiting_loop(self):
        with self._waiting_cond:
            while not self.shutting_down():
                self._waiting_cond.wait(self._add_ready_items())

    def shut_down(self):
        super(DelayingQueue, self).shut_down()
        with self._waiting_cond:
            self._waiting_cond.notify_all()


class RateLimitingQueue(DelayingQueue):
    """DelayingQueue asking a rate limiter for the delay of retried items."""

    def __init__(self, rate_limiter=None, clock=time.monotonic):
        super(RateLimitingQueue, self).__init__(clock=clock)
        self._rate_limiter = rate_limiter or default_rate_limiter()

    def add_rate_limited(self, item):
        self.add_after(item, self._rate_limiter.when(item))

    def num_requeues(self, item):
        return self._rate_limiter.num_requeues(item)

    def forget(self, item):
        self._rate_limiter.forget(item)
