import json
import os

import pytest

import zkvoting.main as cli
from zkvoting.main import main

from conftest import CIRCUIT_PATH, VOTER_A, VOTER_B


@pytest.fixture
def base_args(zokrates_bin, working_dir, tmp_path):
    return [
        "--project_dir", str(tmp_path),
        "--zokrates_bin", zokrates_bin,
        "--circuit_path", str(CIRCUIT_PATH),
        "--working_dir", working_dir,
    ]


class StubManager:
    def __init__(self, w3):
        self.w3 = w3


@pytest.fixture
def stub_ledger(monkeypatch, ledger, fake_w3):
    monkeypatch.setattr(cli, "load_voting_contract", lambda config: (StubManager(fake_w3), ledger))
    return ledger


def test_provision(base_args, working_dir, capsys):
    assert main(base_args + ["provision"]) == 0

    assert "provisioned" in capsys.readouterr().out
    assert os.listdir(os.path.join(working_dir, "circuits"))


def test_prove_to_file(base_args, tmp_path):
    out = tmp_path / "proof.json"

    assert main(base_args + ["prove", "--choice", "2", "--out", str(out)]) == 0

    proof = json.loads(out.read_text())
    assert set(proof["proof"]) == {"a", "b", "c"}


def test_prove_out_of_range(base_args, zokrates_calls):
    assert main(base_args + ["prove", "--choice", "5"]) == 1
    assert zokrates_calls() == []


def test_has_voted(base_args, stub_ledger, capsys):
    stub_ledger.records[VOTER_A] = (True, 1)

    assert main(base_args + ["has-voted", VOTER_A]) == 0
    assert "already voted" in capsys.readouterr().out

    assert main(base_args + ["has-voted", VOTER_B]) == 0
    assert "not yet voted" in capsys.readouterr().out


def test_vote_twice(base_args, stub_ledger, capsys):
    assert main(base_args + ["vote", "--choice", "1", "--account_index", "1"]) == 0
    assert "Vote submitted successfully" in capsys.readouterr().out
    assert stub_ledger.records[VOTER_B][0]

    assert main(base_args + ["vote", "--choice", "2", "--account_index", "1"]) == 1
