"""Reply Relay — ``python -m reply_relay`` entry point."""

from reply_relay.main import main

main()
