"""Game module - Abalone rules, board tables and encoding."""

from .board import (
    ACTIONS,
    BOARD_SIZE,
    CELLS,
    DIRECTIONS,
    NUM_ACTIONS,
    OFF_BOARD,
    Cell,
    Marble,
    cell_name,
    on_board,
    parse_cell,
    step,
)

from .abalone import (
    BELGIAN_DAISY,
    LAYOUTS,
    LOSS_DEFEAT,
    MARBLES_PER_SIDE,
    STANDARD,
    GameState,
    Move,
    MoveKind,
    apply_move,
    empty_board,
    from_board,
    game_outcome,
    initial_state,
    is_terminal,
    legal_moves,
    render,
    resolve_move,
    undo_move,
    validate_board,
)

from .encoding import (
    ABALONE_SPEC,
    NUM_CHANNELS,
    GameSpec,
    decode_policy,
    encode_state,
    encode_state_batch,
    encode_state_torch,
    get_action_mask,
    mask_illegal_logits,
    policy_from_vector,
    policy_to_vector,
)

__all__ = [
    "ACTIONS",
    "BOARD_SIZE",
    "CELLS",
    "DIRECTIONS",
    "NUM_ACTIONS",
    "OFF_BOARD",
    "Cell",
    "Marble",
    "cell_name",
    "on_board",
    "parse_cell",
    "step",
    "BELGIAN_DAISY",
    "LAYOUTS",
    "LOSS_DEFEAT",
    "MARBLES_PER_SIDE",
    "STANDARD",
    "GameState",
    "Move",
    "MoveKind",
    "apply_move",
    "empty_board",
    "from_board",
    "game_outcome",
    "initial_state",
    "is_terminal",
    "legal_moves",
    "render",
    "resolve_move",
    "undo_move",
    "validate_board",
    "ABALONE_SPEC",
    "NUM_CHANNELS",
    "GameSpec",
    "decode_policy",
    "encode_state",
    "encode_state_batch",
    "encode_state_torch",
    "get_action_mask",
    "mask_illegal_logits",
    "policy_from_vector",
    "policy_to_vector",
]
