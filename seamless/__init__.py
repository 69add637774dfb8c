"""Seamless Translator: translate or rephrase text through a web API or a local model."""
