from src.utils.logger import BASE_LOGGER_NAMESPACE, _console_filter, get_logger


def record(**extra):
    return {"extra": extra}


class TestConsoleFilter:
    def test_component_records_go_to_component_sink(self):
        assert _console_filter(with_module=True)(record(module="chain_mcp.Discovery"))
        assert not _console_filter(with_module=False)(record(module="chain_mcp.Discovery"))

    def test_unbound_records_go_to_plain_sink(self):
        assert _console_filter(with_module=False)(record())
        assert not _console_filter(with_module=True)(record())

    def test_audit_records_never_reach_console(self):
        audit = record(module="chain_mcp.Audit", audit=True, audit_sink="abc")
        assert not _console_filter(with_module=True)(audit)
        assert not _console_filter(with_module=False)(record(audit=True))


def test_get_logger_binds_namespace():
    messages = []
    log = get_logger("Discovery")
    sink_id = log.add(lambda message: messages.append(message.record["extra"]["module"]), level="DEBUG")
    try:
        log.info("sweep started")
    finally:
        log.remove(sink_id)
    assert messages == [f"{BASE_LOGGER_NAMESPACE}.Discovery"]
