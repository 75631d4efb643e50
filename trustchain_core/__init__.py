"""
trustchain Core Package
=======================
Trust-chain and permission engine for the Operator -> Account -> User
hierarchy that authorizes message-bus connections.

Provides:
- Role-tagged Ed25519 key pairs, key store and key resolution
- Claim model, signing and chain verification
- Publish/subscribe permission sets and revocation lists
- Directory-backed claim store and the add/edit/revoke actions
"""
