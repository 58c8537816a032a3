"""Core domain package for solscope.

Core contains account decoding, instruction filtering, message reconstruction
and change tracking without any Solana client or terminal-specific code,
keeping the protocol logic portable.
"""
