from .gateway import InMemoryOracleGateway, OracleAttestationGateway

__all__ = ["InMemoryOracleGateway", "OracleAttestationGateway"]
