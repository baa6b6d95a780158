"""
Dialog engine: conversation state, prompts, the dialog stack engine and the
menu/flow graph of the bot.
"""
