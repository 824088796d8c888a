import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.config import MaciConfig, load_config
from core.maci_state import MaciState, MessageStatus, ProcessResult
from domainobjs.domain_objects import Command, Keypair
from utils.utils import save_circuit_inputs, setup_logging

logger = logging.getLogger(__name__)


class PollSimulation:
    """Drives a MaciState through sign-up, voting and processing"""

    def __init__(self, config: MaciConfig, output_dir: Path):
        self.config = config
        self.output_dir = output_dir
        self.coordinator = Keypair()
        self.state = MaciState(self.coordinator, config)
        self.voters: Dict[int, Keypair] = {}

    def sign_up_voters(self, num_voters: int):
        for _ in range(num_voters):
            keypair = Keypair()
            state_index = self.state.sign_up(keypair.pub_key)
            self.voters[state_index] = keypair

    def cast_vote(self, state_index: int, vote_option_index: int, vote_weight: int,
                  signer: Optional[Keypair] = None) -> int:
        voter = self.voters[state_index]
        command = Command(
            state_index=state_index,
            new_pub_key=voter.pub_key,
            vote_option_index=vote_option_index,
            new_vote_weight=vote_weight,
            nonce=1,
        )
        signature = command.sign((signer or voter).priv_key)

        ephemeral = Keypair()
        shared_key = Keypair.gen_ecdh_shared_key(ephemeral.priv_key, self.coordinator.pub_key)
        message = command.encrypt(signature, shared_key)
        return self.state.publish_message(message, ephemeral.pub_key)

    def process_all(self) -> List[ProcessResult]:
        results = []
        for message_index in range(len(self.state.messages)):
            inputs = self.state.gen_update_state_tree_circuit_inputs(message_index)
            save_circuit_inputs(inputs, self.output_dir / f"update_state_tree_{message_index}.json")

            result = self.state.process_message(message_index)
            if result.state_root != inputs['new_state_tree_root']:
                raise RuntimeError(f"Message {message_index} produced a root the circuit inputs do not prove")
            results.append(result)
        return results


def run_demo(num_voters: int, config: MaciConfig, output_dir: Path) -> Dict[str, Any]:
    num_voters = min(num_voters, config.max_users, config.max_messages - 1)
    simulation = PollSimulation(config, output_dir)

    logger.info(f"Signing up {num_voters} voters")
    simulation.sign_up_voters(num_voters)

    num_options = config.vote_options_max_leaf_index + 1
    max_weight = int(config.initial_voice_credit_balance ** 0.5)
    for state_index in simulation.voters:
        simulation.cast_vote(state_index, state_index % num_options, 1 + state_index % max(max_weight, 1))

    # A message signed with a key the state does not know is skipped
    if simulation.voters:
        simulation.cast_vote(1, 0, 1, signer=Keypair())

    results = simulation.process_all()

    outcomes = {status.value: 0 for status in MessageStatus}
    for result in results:
        outcomes[result.status.value] += 1

    return {
        'voters': num_voters,
        'messages': len(results),
        'outcomes': outcomes,
        'state_root': simulation.state.gen_state_root(),
        'message_root': simulation.state.gen_message_root(),
    }


def main():
    parser = argparse.ArgumentParser(
        description='Coordinator-side vote processing demo')
    parser.add_argument('--voters', type=int, default=5,
                        help='Number of voters')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument('--output', type=str, default='circuit_inputs',
                        help='Directory for update-state-tree circuit inputs')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Override the configured log level')

    args = parser.parse_args()

    config = load_config(Path(args.config))
    setup_logging(args.log_level or config.log_level, log_dir=config.log_dir)

    summary = run_demo(args.voters, config, Path(args.output))

    print(f"\nProcessed {summary['messages']} messages from {summary['voters']} voters")
    for status, count in summary['outcomes'].items():
        if count:
            print(f"  {status}: {count}")
    print(f"State root:   {summary['state_root']}")
    print(f"Message root: {summary['message_root']}")

    sys.exit(0)


if __name__ == "__main__":
    main()
