import threading

from app.doctrack.identity import ActorContext

from conftest import TENANT, make_draft


def test_concurrent_final_approvals_release_exactly_once(engine, dispatcher, alice, form_type):
    approvers = [
        ActorContext(user_id=f"u-appr-{i}", email=f"appr{i}@acme.test", tenant_id=TENANT) for i in range(4)
    ]
    doc = make_draft(engine, alice, form_type["id"])
    for a in approvers:
        assert engine.add_approver(alice, doc["id"], user_id=a.user_id, user_email=a.email).ok
    assert engine.submit(alice, doc["id"]).ok

    barrier = threading.Barrier(len(approvers))
    results = {}

    def vote(ctx):
        barrier.wait()
        res = engine.approve(ctx, doc["id"])
        # A lost optimistic-lock race is reported as retryable; retry like a caller would.
        while not res.ok and res.error.retryable:
            res = engine.approve(ctx, doc["id"])
        results[ctx.user_id] = res

    threads = [threading.Thread(target=vote, args=(a,)) for a in approvers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(r.ok for r in results.values()), [r.error for r in results.values() if not r.ok]
    final = engine.get_document(alice, doc["id"]).value
    assert final["status"] == "Released"
    assert {a["status"] for a in final["approvers"]} == {"Approved"}
    assert dispatcher.names().count("released") == 1
