from bot.services.statuses import OrderStatus, normalize_status, status_label


def test_canonical_values_pass_through():
    for status in OrderStatus:
        assert normalize_status(status.value) == status
        assert normalize_status(status) == status


def test_legacy_and_unknown_values_become_pending():
    assert normalize_status("new") == OrderStatus.PENDING
    assert normalize_status("cancelled") == OrderStatus.PENDING
    assert normalize_status("completed") == OrderStatus.PENDING
    assert normalize_status("DONE") == OrderStatus.PENDING
    assert normalize_status("") == OrderStatus.PENDING


def test_non_string_values_become_pending():
    for raw in (None, 1, 2.5, ["done"], {"status": "done"}):
        assert normalize_status(raw) == OrderStatus.PENDING


def test_normalization_is_total():
    samples = ["", " ", "review ", "in progress", "in_progress", "💥", "done\n", "pending"]
    for raw in samples:
        assert normalize_status(raw) in set(OrderStatus)


def test_labels():
    assert status_label("review") == "Проверяется"
    assert status_label("whatever") == "Новый"
