import socket
import threading

import pytest

from labrpc.bakery import COUNT_CLIENTS, Bakery, BakeryClient, Ticket, create_server, main
from labrpc.calculator import Operation
from labrpc.rpc import RpcError
from labrpc.xdr import XdrError


@pytest.fixture
def running():
    bakery = Bakery()
    server = create_server(bakery)
    host, port = server.start()
    yield bakery, host, port
    server.shutdown()


def test_ticket_wire_bytes():
    ticket = Ticket(num=1, pid=2, ind=3, op=0, arg1=2.0, arg2=3.0, result=5)
    assert ticket.encode() == bytes.fromhex(
        "00000001" "00000002" "00000003" "00000000" "40000000" "40400000" "00000005"
    )


def test_ticket_round_trip():
    ticket = Ticket(num=7, pid=4242, ind=4, op=2, arg1=1.5, arg2=-2.25, result=-3)
    assert Ticket.decode(ticket.encode()) == ticket


def test_ticket_decode_truncated():
    with pytest.raises(XdrError):
        Ticket.decode(Ticket().encode()[:-4])


def test_numbers_increase():
    bakery = Bakery()
    first = bakery.get_number(Ticket(pid=10, ind=0))
    second = bakery.get_number(Ticket(pid=11, ind=3))
    assert first.num == 1
    assert second.num == 2
    assert bakery.numbers() == (1, 0, 0, 2, 0)


def test_serve_add_matches_client_example():
    bakery = Bakery()
    ticket = bakery.get_number(Ticket(pid=1, ind=0, op=Operation.ADD, arg1=2, arg2=3))
    assert bakery.serve(ticket).result == 5


def test_serve_sub_and_truncation():
    bakery = Bakery()
    sub = bakery.serve(bakery.get_number(Ticket(pid=1, ind=1, op=Operation.SUB, arg1=2, arg2=3)))
    assert sub.result == -1
    div = bakery.serve(bakery.get_number(Ticket(pid=1, ind=1, op=Operation.DIV, arg1=7, arg2=2)))
    assert div.result == 3


def test_serve_clears_slot_and_numbering_restarts():
    bakery = Bakery()
    bakery.serve(bakery.get_number(Ticket(pid=1, ind=2, op=Operation.MUL, arg1=2, arg2=3)))
    assert bakery.numbers() == (0,) * COUNT_CLIENTS
    assert bakery.get_number(Ticket(pid=1, ind=4)).num == 1


def test_bad_index_rejected():
    bakery = Bakery()
    with pytest.raises(ValueError):
        bakery.get_number(Ticket(ind=COUNT_CLIENTS))
    with pytest.raises(ValueError):
        bakery.serve(Ticket(ind=-1))


def test_division_by_zero_frees_slot():
    bakery = Bakery()
    ticket = bakery.get_number(Ticket(pid=1, ind=0, op=Operation.DIV, arg1=1, arg2=0))
    with pytest.raises(ValueError):
        bakery.serve(ticket)
    assert bakery.numbers() == (0,) * COUNT_CLIENTS


def test_higher_number_waits_for_lower():
    bakery = Bakery()
    early = bakery.get_number(Ticket(pid=1, ind=0, arg1=1, arg2=1))
    late = bakery.get_number(Ticket(pid=2, ind=1, arg1=2, arg2=3))
    results = []
    worker = threading.Thread(target=lambda: results.append(bakery.serve(late)))
    worker.start()
    worker.join(0.2)
    assert worker.is_alive()
    assert bakery.serve(early).result == 2
    worker.join(5)
    assert not worker.is_alive()
    assert results[0].result == 5


def test_remote_get_number_and_serve(running):
    bakery, host, port = running
    with BakeryClient(host, port) as client:
        ticket = client.get_number(Ticket(pid=9, ind=2, op=Operation.ADD, arg1=2, arg2=3))
        assert ticket.num == 1
        assert bakery.numbers()[2] == 1
        assert client.serve(ticket).result == 5
    assert bakery.numbers() == (0,) * COUNT_CLIENTS


def test_remote_bad_index(running):
    _, host, port = running
    with BakeryClient(host, port) as client:
        with pytest.raises(RpcError) as info:
            client.get_number(Ticket(ind=99))
    assert info.value.status.name == "SYSTEM_ERR"


def test_main_runs_all_clients(running, capsys):
    bakery, host, port = running
    assert main([host, "-p", str(port)]) == 0
    out = capsys.readouterr().out
    assert "Parent client exited" in out
    assert out.count("status = 0") == COUNT_CLIENTS
    assert bakery.numbers() == (0,) * COUNT_CLIENTS


def test_main_without_server():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    assert main(["127.0.0.1", "-p", str(port)]) == 1