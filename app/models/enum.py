# app/models/enum.py
from enum import Enum

class NFTType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    MODEL_3D = "3d"

class TransactionType(str, Enum):
    PURCHASE = "purchase"                   # Transfer NFT yang sudah minted
    PURCHASE_AND_MINT = "purchase_and_mint" # Pembelian pertama lazy-minted NFT
