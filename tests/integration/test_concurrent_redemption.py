"""
Concurrent redemption tests.

Each scanner attempt runs in its own thread with its own session against a
file-backed SQLite database, so the guarded UPDATE is exercised while other
attempts are in flight instead of one attempt after another.
"""
import queue
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from passkit.core import db
from passkit.models import User, Pass, ScannerLink, ScanEvent
from passkit.services import RedemptionEngine


ATTEMPTS = 8


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def file_sessions(tmp_path):
    """Session factory for a throwaway on-disk database shared by threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'redemption.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    db.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def seeded_ids(file_sessions):
    """(pass id, scanner link id) for one active single-use pass."""
    session = file_sessions()
    tenant = User(name='Front Desk Co', email='frontdesk@example.com')
    session.add(tenant)
    session.flush()

    wallet_pass = Pass(user_id=tenant.id, platforms=['apple'], pass_data={'tier': 'gold'})
    link = ScannerLink(user_id=tenant.id, name='Main entrance')
    session.add_all([wallet_pass, link])
    session.commit()

    ids = (wallet_pass.id, link.id)
    session.close()
    return ids


# =============================================================================
# CONCURRENCY TESTS
# =============================================================================

@pytest.mark.integration
class TestConcurrentRedemption:

    def test_simultaneous_scans_redeem_exactly_once(self, app, file_sessions, seeded_ids):
        """
        GIVEN one active single-use pass
        WHEN several scanners redeem it at the same moment
        THEN exactly one succeeds, the rest see "already redeemed", and every attempt is logged
        """
        pass_id, link_id = seeded_ids
        start = threading.Barrier(ATTEMPTS, timeout=30)
        outcomes = queue.Queue()

        def scan():
            with app.app_context():
                session = file_sessions()
                try:
                    link = session.get(ScannerLink, link_id)
                    engine = RedemptionEngine(session, payload_secret=b'concurrency-secret')
                    start.wait()
                    outcomes.put(engine.redeem(link, pass_id=pass_id).outcome)
                except Exception as e:
                    outcomes.put(e)
                finally:
                    session.close()

        threads = [threading.Thread(target=scan) for _ in range(ATTEMPTS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        results = []
        while not outcomes.empty():
            results.append(outcomes.get())

        assert len(results) == ATTEMPTS
        assert not [r for r in results if isinstance(r, Exception)]
        assert results.count('success') == 1
        assert results.count('already_redeemed') == ATTEMPTS - 1

        session = file_sessions()
        try:
            events = session.query(ScanEvent).filter_by(pass_id=pass_id).all()
            assert len(events) == ATTEMPTS
            assert [e.result for e in events].count('success') == 1
            assert session.get(Pass, pass_id).status == 'redeemed'
        finally:
            session.close()
