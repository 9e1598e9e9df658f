"""Basic import tests to verify package structure."""


def test_import_ncsnet():
    """Verify main package imports."""
    import ncsnet
    assert ncsnet.__version__ == "0.1.0"


def test_import_network():
    """Verify network module structure exists."""
    from ncsnet import network
    assert hasattr(network, "__doc__")
    assert issubclass(network.NetworkDelay, network.VariableDelay)


def test_import_strategies():
    """Verify strategy registries are populated."""
    from ncsnet import strategies
    assert "ramp" in strategies.CONTROL_STRATEGIES
    assert "luenberger" in strategies.OBSERVER_STRATEGIES


def test_public_names():
    """Every name in __all__ resolves."""
    import ncsnet
    for name in ncsnet.__all__:
        assert hasattr(ncsnet, name), name
