# app/tasks/cleanup.py
from datetime import datetime, timedelta
from typing import Callable, NamedTuple

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.domain.errors import CartLocked, ConcurrencyConflict
from app.repos.cart_repo import CartRepo
from app.services.lock_service import LockService
from app.utils.clock import utcnow
from app.utils.logging import get_logger
from app.utils.settings import ABANDON_AFTER, RETENTION

logger = get_logger(__name__)

# bledy pojedynczego koszyka nie przerywaja calego przebiegu
_SKIPPABLE = (SQLAlchemyError, RedisError, CartLocked, ConcurrencyConflict)


class CleanupResult(NamedTuple):
    marked: int
    removed: int


class AbandonmentSweeper:
    """
    Dwa przebiegi, zawsze w tej kolejnosci:
    1. aktywne koszyki bez interakcji >= 3h -> porzucone (updated_at = teraz)
    2. porzucone >= 7 dni (liczone od updated_at) -> usuniete razem z pozycjami

    Koszyk oznaczony w przebiegu 1 ma updated_at = now, wiec nie zostanie
    usuniety w tym samym uruchomieniu.
    """

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        lock_service: LockService | None = None,
        clock: Callable[[], datetime] = utcnow,
        abandon_after: timedelta = ABANDON_AFTER,
        retention: timedelta = RETENTION,
    ):
        self.session_factory = session_factory
        self.lock_service = lock_service or LockService()
        self.clock = clock
        self.abandon_after = abandon_after
        self.retention = retention

    def run(self) -> CleanupResult:
        logger.info("Starting abandoned cart cleanup job")

        db: Session = self.session_factory()
        try:
            repo = CartRepo(db)
            marked = self.mark_inactive_carts(repo)
            removed = self.remove_old_abandoned_carts(repo)
        finally:
            db.close()

        logger.info("Completed abandoned cart cleanup job")
        return CleanupResult(marked=marked, removed=removed)

    def mark_inactive_carts(self, repo: CartRepo) -> int:
        now = self.clock()
        cart_ids = repo.inactive_cart_ids(now - self.abandon_after)

        marked_count = 0
        for cart_id in cart_ids:
            try:
                if self.mark_abandoned(repo, cart_id, now):
                    marked_count += 1
            except _SKIPPABLE as e:
                repo.rollback()
                logger.warning(f"Failed to mark cart {cart_id} as abandoned: {e}")

        logger.info(f"Marked {marked_count} carts as abandoned")
        return marked_count

    def remove_old_abandoned_carts(self, repo: CartRepo) -> int:
        now = self.clock()
        cart_ids = repo.stale_abandoned_cart_ids(now - self.retention)

        removed_count = 0
        for cart_id in cart_ids:
            try:
                if self.remove_if_abandoned(repo, cart_id, now):
                    removed_count += 1
            except _SKIPPABLE as e:
                repo.rollback()
                logger.warning(f"Failed to remove abandoned cart {cart_id}: {e}")

        logger.info(f"Removed {removed_count} old abandoned carts")
        return removed_count

    def mark_abandoned(self, repo: CartRepo, cart_id: int, now: datetime) -> bool:
        with self.lock_service.cart_lock(cart_id):
            cart = repo.get_cart(cart_id, refresh=True)
            # w miedzyczasie klient mogl dodac produkt albo koszyk zniknal
            if cart is None or not cart.mark_abandoned(now, after=self.abandon_after):
                return False
            repo.commit()
            return True

    def remove_if_abandoned(self, repo: CartRepo, cart_id: int, now: datetime) -> bool:
        with self.lock_service.cart_lock(cart_id):
            cart = repo.get_cart(cart_id, refresh=True)
            if cart is None or not cart.removable(now, retention=self.retention):
                return False
            repo.destroy(cart)
            return True


@celery_app.task(name="app.tasks.cleanup.run_cleanup")
def run_cleanup():
    result = AbandonmentSweeper().run()
    return result._asdict()
