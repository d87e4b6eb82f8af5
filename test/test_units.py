from decimal import Decimal

from basegas.core.units import calculate_tx_cost, eth_to_wei, format_gas, gwei_to_wei, wei_to_eth, wei_to_gwei


def test_conversions():
    assert gwei_to_wei(20) == 20_000_000_000
    assert gwei_to_wei("0.5") == 500_000_000
    assert wei_to_gwei(1_500_000_000) == Decimal("1.5")
    assert wei_to_eth(10**18) == Decimal("1")
    assert eth_to_wei("0.1") == 10**17


def test_cost_and_formatting():
    assert calculate_tx_cost(21000, 10**9) == 21_000_000_000_000
    assert format_gas(21000) == "21,000"
    assert format_gas(1234567) == "1,234,567"
    assert format_gas(999) == "999"
