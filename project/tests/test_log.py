import datetime
from decimal import Decimal

from storefront.utils.log import Log


async def test_events_are_written_to_daily_file(tmp_path):
    log = Log(log_dir=str(tmp_path))
    now = datetime.datetime.now()

    await log.log_warning("checkout", "Тариф не определён", {"total": Decimal("1300.00")}, is_console=False)
    await log.shutdown()

    content = open(log.build_log_path(now), encoding="utf-8").read()
    assert "checkout: WARNING: Тариф не определён" in content
    assert "'total': '1300.00'" in content
