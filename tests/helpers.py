"""
helpers.py - Shortcuts for building engine state in tests
"""

from stablecoin import Deployment


def fund_and_deposit(deployment: Deployment, user: str, asset: str, amount: int) -> None:
    """Mint collateral to user, approve the engine, and deposit it."""
    token = deployment.token(asset)
    token.mint(user, amount)
    token.approve(user, deployment.engine.address, amount)
    deployment.engine.deposit_collateral(user, asset, amount)


def open_position(deployment: Deployment, user: str, asset: str, collateral: int, debt: int) -> None:
    """Mint collateral to user, approve, then deposit and mint debt at once."""
    token = deployment.token(asset)
    token.mint(user, collateral)
    token.approve(user, deployment.engine.address, collateral)
    deployment.engine.deposit_collateral_and_mint_debt(user, asset, collateral, debt)


def approve_stablecoin(deployment: Deployment, user: str, amount: int) -> None:
    deployment.stablecoin.approve(user, deployment.engine.address, amount)


def engine_state(deployment: Deployment, users) -> dict:
    """Everything an aborted operation must leave untouched."""
    engine = deployment.engine
    state = {
        'events': engine.events,
        'total_debt': engine.total_debt(),
        'supply': deployment.stablecoin.total_supply(),
        'log_length': len(deployment.ledger.transaction_log),
    }
    for user in users:
        state[user] = {
            'debt': engine.get_debt_of_user(user),
            'dsc': deployment.stablecoin.balance_of(user),
        }
        for asset in engine.get_collateral_tokens():
            state[user][asset] = engine.get_collateral_balance_of_user(user, asset)
            state[user][f"wallet_{asset}"] = deployment.token(asset).balance_of(user)
    for asset in engine.get_collateral_tokens():
        state[f"custody_{asset}"] = deployment.token(asset).balance_of(engine.address)
    return state
