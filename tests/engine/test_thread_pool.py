from __future__ import annotations

from catalog_crawler.engine import ThreadPoolManager


def test_thread_pool_manager_isolates_executors() -> None:
    manager = ThreadPoolManager(default_workers=2)
    default_a = manager.get()
    default_b = manager.get()
    assert default_a is default_b

    pool_alpha = manager.get("alpha", max_workers=1)
    assert manager.get("alpha") is pool_alpha
    assert manager.get("beta") is not pool_alpha

    assert pool_alpha.submit(lambda: 21 * 2).result(timeout=1) == 42
    manager.shutdown(wait=True)
    assert manager.get("alpha") is not pool_alpha
    manager.shutdown()
