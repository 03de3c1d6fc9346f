from games.auction import AuctionGame
from games.bingo import BingoGame
from games.closest_roll import ClosestRollGame
from games.deal_or_no_deal import DealOrNoDealGame
from games.exploding_electrode import ExplodingElectrodeGame
from games.exploding_voltorbs import ExplodingVoltorbsGame

__all__ = [
    "AuctionGame",
    "BingoGame",
    "ClosestRollGame",
    "DealOrNoDealGame",
    "ExplodingElectrodeGame",
    "ExplodingVoltorbsGame",
]
