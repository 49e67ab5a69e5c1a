"""
Tests for the connectivity monitor.
"""

import asyncio

import pytest

from offline_cache.services import ConnectivityMonitor


def test_subscribers_fire_once_per_transition():
    monitor = ConnectivityMonitor(online=True)
    changes = []
    monitor.subscribe(changes.append)

    assert monitor.set_online(True) is False
    assert monitor.set_online(False) is True
    assert monitor.set_online(False) is False
    assert monitor.set_online(True) is True

    assert changes == [False, True]


def test_unsubscribe_stops_notifications():
    monitor = ConnectivityMonitor()
    changes = []
    unsubscribe = monitor.subscribe(changes.append)

    unsubscribe()
    monitor.set_online(False)

    assert changes == []


def test_failing_subscriber_is_isolated():
    monitor = ConnectivityMonitor()
    changes = []

    def broken(online):
        raise RuntimeError("subscriber bug")

    monitor.subscribe(broken)
    monitor.subscribe(changes.append)
    monitor.set_online(False)

    assert changes == [False]
    assert not monitor.is_online()


def test_report_unreachable_goes_offline():
    monitor = ConnectivityMonitor()

    assert monitor.report_unreachable() is True
    assert not monitor.is_online()
    assert monitor.report_unreachable() is False


@pytest.mark.asyncio
async def test_check_treats_probe_errors_as_unreachable():
    monitor = ConnectivityMonitor()

    async def probe():
        raise OSError("no route to host")

    assert await monitor.check(probe) is False
    assert not monitor.is_online()


@pytest.mark.asyncio
async def test_probe_loop_restores_online_state():
    monitor = ConnectivityMonitor(online=False)
    reachable = asyncio.Event()

    async def probe():
        return reachable.is_set()

    monitor.start_probe(probe, interval=0.01)
    assert monitor.is_probing
    await asyncio.sleep(0.03)
    assert not monitor.is_online()

    reachable.set()
    await asyncio.sleep(0.05)
    assert monitor.is_online()

    await monitor.stop_probe()
    assert not monitor.is_probing


@pytest.mark.asyncio
async def test_probe_interval_must_be_positive():
    monitor = ConnectivityMonitor()

    async def probe():
        return True

    with pytest.raises(ValueError):
        monitor.start_probe(probe, interval=0)
