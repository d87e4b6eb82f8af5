# /basegas/core/units.py
# Unit conversion and formatting helpers for gas figures.
from decimal import Decimal
from typing import Union

from web3 import Web3

Number = Union[int, float, str, Decimal]


def gwei_to_wei(gwei: Number) -> int:
    return int(Web3.to_wei(Decimal(str(gwei)), "gwei"))


def wei_to_gwei(wei: int) -> Decimal:
    return Decimal(Web3.from_wei(wei, "gwei"))


def wei_to_eth(wei: int) -> Decimal:
    return Decimal(Web3.from_wei(wei, "ether"))


def eth_to_wei(eth: Number) -> int:
    return int(Web3.to_wei(Decimal(str(eth)), "ether"))


def calculate_tx_cost(gas_used: int, gas_price: int) -> int:
    """Transaction cost in wei."""
    return gas_used * gas_price


def format_gas(gas: int) -> str:
    """21000 -> '21,000'"""
    return f"{gas:,}"
