from conftest import TEST_EMAIL, TEST_PASSWORD, seed_product


def test_accounts_create_and_list(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['accounts', 'create', '--email', TEST_EMAIL, '--password', TEST_PASSWORD])
    assert "PASS Created account" in result.output

    result = runner.invoke(args=['accounts', 'list'])
    assert TEST_EMAIL in result.output


def test_accounts_create_rejects_short_password(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['accounts', 'create', '--email', TEST_EMAIL, '--password', 'abc'])

    assert "FAIL" in result.output


def test_sync_status_replay_and_clear(app, services, authorized):
    runner = app.test_cli_runner()
    seed_product(services, quantity=10)
    services.connectivity.set_online(False)
    services.inventory.sell("111", 2)
    services.inventory.sell("111", 1)

    result = runner.invoke(args=['sync', 'status', '--uid', authorized.uid])
    assert "Pending actions: 2" in result.output

    result = runner.invoke(args=['sync', 'replay', '--uid', authorized.uid])
    assert "marked offline" in result.output

    result = runner.invoke(args=['sync', 'clear', '--uid', authorized.uid, '--yes'])
    assert "Discarded 2 pending actions" in result.output
    assert services.queue.is_empty()


def test_sync_replay_applies_queue(app, services, authorized):
    runner = app.test_cli_runner()
    seed_product(services, quantity=10)
    services.connectivity.set_online(False)
    services.inventory.sell("111", 3)
    # Flip only the store back, so the listener does not replay first
    services.remote.online = True
    services.connectivity._online = True

    result = runner.invoke(args=['sync', 'replay', '--uid', authorized.uid])

    assert "PASS Replayed 1 actions" in result.output
    assert services.remote.get(f"users/{authorized.uid}/stock/111/quantity") == 7
