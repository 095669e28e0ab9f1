import uuid
from contextlib import contextmanager

import redis

from app.domain.errors import CartLocked
from app.utils.retry import lock_wait, redis_retry
from app.utils.settings import REDIS_URL, CART_LOCK_TTL_SECONDS, CART_LOCK_WAIT_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje atomowo przez lua, skrypt dziala jako jedna nieprzerywalna operacja
#nie mozna wcisnac sie miedzy GET a DEL, wiec tu jest get + porownanie + del wszystko naraz


def _lock_key(cart_id: int) -> str:
    return f"cart:{cart_id}:lock"


class LockService:
    """
    -lock per koszyk (jedna mutacja koszyka naraz: requesty + sweeper)
    -token w wartosci, zeby nie zwolnic cudzego locka po wygasnieciu TTL
    -atomowosc zwalniania przy pomocy lua
    """

    def __init__(
        self,
        url: str | None = None,
        client: redis.Redis | None = None,
        ttl: int = CART_LOCK_TTL_SECONDS,
        wait: float = CART_LOCK_WAIT_SECONDS,
    ):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )
        self.ttl = ttl
        self.wait = wait

    @redis_retry()
    def acquire_cart_lock(self, cart_id: int, token: str, ttl: int) -> bool:
        key = _lock_key(cart_id)
        #SET cart:1:lock "token" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True, #tylko jesli klucz nie istnieje
                ex=ttl, #wygasa sam, nawet jak proces padnie
            )
        )

    @redis_retry()
    def release_cart_lock(self, cart_id: int, token: str) -> bool:
        key = _lock_key(cart_id)
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)

    @contextmanager
    def cart_lock(self, cart_id: int):
        token = uuid.uuid4().hex

        acquire = lock_wait(self.wait)(self.acquire_cart_lock)
        if not acquire(cart_id, token, self.ttl):
            logger.warning(f"Nie udalo sie zablokowac koszyka {cart_id} w {self.wait}s")
            raise CartLocked(cart_id)

        logger.debug(f"Acquire lock {_lock_key(cart_id)}")
        try:
            yield
        finally:
            if not self.release_cart_lock(cart_id, token):
                logger.warning(f"Lock koszyka {cart_id} wygasl przed zwolnieniem")
